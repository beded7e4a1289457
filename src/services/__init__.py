# noqa
from src.services.session_service import (
    ContactResult,
    FilePayload,
    SessionLifecycleService,
)
from src.services.file_storage import LocalFileStorage
from src.services.customer_profile import KlaviyoProfileClient

__all__ = [
    "SessionLifecycleService",
    "ContactResult",
    "FilePayload",
    "LocalFileStorage",
    "KlaviyoProfileClient",
]
