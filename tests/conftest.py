"""
Shared test fixtures.

SQLite fixtures use a fresh temporary database per test. In-memory fixtures
wire the lifecycle service to the fakes in tests/fakes.py.
"""

import pytest
import tempfile
import uuid
from pathlib import Path
from types import SimpleNamespace
from typing import List, Optional
from unittest.mock import patch

from src.domain.models.experiment import BranchingRule, Experiment, ExperimentLevel, Question
from src.domain.models.session import Session
from src.persistence.database import init_database
from src.persistence.repositories.response_repo import ResponseRepository
from src.persistence.repositories.sequence_repo import SqliteSequenceAllocator
from src.persistence.repositories.session_repo import SessionRepository
from src.persistence.repositories.user_repo import UserRepository
from src.services.session_service import SessionLifecycleService
from tests.fakes import (
    InMemoryCatalog,
    InMemoryResponseStore,
    InMemorySequence,
    InMemorySessionStore,
    InMemoryUserStore,
    RecordingCustomerProfile,
    RecordingFileStorage,
)


def make_experiment(
    experiment_id: str = "exp-test",
    total_levels: int = 5,
    rules_by_level: Optional[dict] = None,
    is_active: bool = True,
) -> Experiment:
    """Build an experiment with one text question per level.

    rules_by_level maps level number to a list of (condition, target_path).
    Levels without an entry get a single default rule.
    """
    rules_by_level = rules_by_level or {}
    levels: List[ExperimentLevel] = []
    for n in range(1, total_levels + 1):
        rules = rules_by_level.get(n, [("default", "default")])
        levels.append(
            ExperimentLevel(
                id=f"{experiment_id}-level-{n}",
                level_number=n,
                video_url=f"/videos/level{n}.mp4",
                questions=[Question(id=f"q{n}", type="text")],
                branching_rules=[
                    BranchingRule(condition=c, target_path=t) for c, t in rules
                ],
            )
        )
    return Experiment(
        id=experiment_id,
        title="Test Experiment",
        total_levels=total_levels,
        is_active=is_active,
        levels=levels,
    )


def make_session(session_id: Optional[str] = None, **overrides) -> Session:
    fields = {
        "id": session_id or str(uuid.uuid4()),
        "user_id": None,
        "experiment_id": "exp-test",
    }
    fields.update(overrides)
    return Session(**fields)


# ============ SQLITE ============


@pytest.fixture
async def test_db():
    """Create and initialize a test database, pointing settings at it."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
def user_repo(test_db):
    return UserRepository(str(test_db))


@pytest.fixture
def session_repo(test_db):
    return SessionRepository(str(test_db))


@pytest.fixture
def response_repo(test_db):
    return ResponseRepository(str(test_db))


@pytest.fixture
def allocator(test_db):
    """SQLite allocator on the configured timeout."""
    return SqliteSequenceAllocator(str(test_db))


@pytest.fixture
def experiment():
    return make_experiment()


@pytest.fixture
def sqlite_service(allocator, user_repo, session_repo, response_repo, experiment):
    """Lifecycle service backed by the SQLite repositories."""
    return SessionLifecycleService(
        allocator=allocator,
        users=user_repo,
        sessions=session_repo,
        responses=response_repo,
        experiments=InMemoryCatalog(experiment),
        file_storage=RecordingFileStorage(),
        customer_profile=RecordingCustomerProfile(),
    )


# ============ IN-MEMORY ============


@pytest.fixture
def stores(experiment):
    """In-memory collaborators, exposed for assertions."""
    sessions = InMemorySessionStore()
    return SimpleNamespace(
        allocator=InMemorySequence(),
        users=InMemoryUserStore(),
        sessions=sessions,
        responses=InMemoryResponseStore(sessions),
        catalog=InMemoryCatalog(experiment),
        file_storage=RecordingFileStorage(),
        customer_profile=RecordingCustomerProfile(),
    )


@pytest.fixture
def service(stores):
    """Lifecycle service backed by in-memory fakes."""
    return SessionLifecycleService(
        allocator=stores.allocator,
        users=stores.users,
        sessions=stores.sessions,
        responses=stores.responses,
        experiments=stores.catalog,
        file_storage=stores.file_storage,
        customer_profile=stores.customer_profile,
        branching_fallback="default",
        storage_timeout=1.0,
    )
