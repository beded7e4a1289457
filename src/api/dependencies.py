"""Dependency injection for API routes."""

from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends
import structlog

from src.core.config import settings
from src.core.experiment_loader import YamlExperimentCatalog
from src.persistence.repositories.response_repo import ResponseRepository
from src.persistence.repositories.sequence_repo import SqliteSequenceAllocator
from src.persistence.repositories.session_repo import SessionRepository
from src.persistence.repositories.user_repo import UserRepository
from src.services.customer_profile import KlaviyoProfileClient
from src.services.file_storage import LocalFileStorage
from src.services.protocols import CustomerProfile, ExperimentCatalog, FileStorage
from src.services.session_service import SessionLifecycleService

log = structlog.get_logger(__name__)


def get_experiment_catalog() -> ExperimentCatalog:
    """FastAPI dependency injection for the experiment catalog.

    YAML files are cached by the loader, so a fresh catalog per request is cheap.
    """
    return YamlExperimentCatalog(active_experiment_id=settings.active_experiment_id)


def get_file_storage() -> FileStorage:
    return LocalFileStorage(settings.upload_dir)


@lru_cache(maxsize=1)
def get_customer_profile() -> Optional[CustomerProfile]:
    """Cached Klaviyo client, or None when no API key is configured.

    Created once per process and reused.
    """
    if not settings.klaviyo_api_key:
        log.info("klaviyo_not_configured")
        return None
    return KlaviyoProfileClient()


def get_session_service(
    experiments: Annotated[ExperimentCatalog, Depends(get_experiment_catalog)],
    file_storage: Annotated[FileStorage, Depends(get_file_storage)],
    customer_profile: Annotated[Optional[CustomerProfile], Depends(get_customer_profile)],
) -> SessionLifecycleService:
    """FastAPI dependency injection for SessionLifecycleService.

    Each request gets repositories bound to the configured database path.
    """
    db_path = str(settings.database_path)
    return SessionLifecycleService(
        allocator=SqliteSequenceAllocator(db_path),
        users=UserRepository(db_path),
        sessions=SessionRepository(db_path),
        responses=ResponseRepository(db_path),
        experiments=experiments,
        file_storage=file_storage,
        customer_profile=customer_profile,
    )


# Type aliases for dependency injection
ExperimentCatalogDep = Annotated[ExperimentCatalog, Depends(get_experiment_catalog)]
SessionServiceDep = Annotated[SessionLifecycleService, Depends(get_session_service)]
