"""Repository implementations."""

from src.persistence.repositories.sequence_repo import SqliteSequenceAllocator
from src.persistence.repositories.user_repo import UserRepository
from src.persistence.repositories.session_repo import SessionRepository
from src.persistence.repositories.response_repo import ResponseRepository

__all__ = [
    "SqliteSequenceAllocator",
    "UserRepository",
    "SessionRepository",
    "ResponseRepository",
]
