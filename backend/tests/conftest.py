import os

# The app module builds its own engine at import time; keep it off disk
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from bracket_engine.database import get_session  # noqa: E402
from bracket_engine.main import app  # noqa: E402
from bracket_engine.models.match import MatchStatus  # noqa: E402
from bracket_engine.services.bracket_manager import BracketManager  # noqa: E402
from bracket_engine.services.stage_queries import match_at  # noqa: E402
from bracket_engine.storage import BracketStorage  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. Use sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Schema dropped and recreated per test so ids start at 1 every time
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on a fresh schema"""
    # Import all models to ensure they're registered BEFORE create_all
    from bracket_engine.models.group import Group  # noqa: F401
    from bracket_engine.models.match import Match  # noqa: F401
    from bracket_engine.models.match_game import MatchGame  # noqa: F401
    from bracket_engine.models.participant import Participant  # noqa: F401
    from bracket_engine.models.round import Round  # noqa: F401
    from bracket_engine.models.stage import Stage  # noqa: F401

    SQLModel.metadata.drop_all(test_engine)
    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="storage")
def storage_fixture(session: Session) -> BracketStorage:
    return BracketStorage(session)


@pytest.fixture(name="manager")
def manager_fixture(storage: BracketStorage) -> BracketManager:
    return BracketManager(storage)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place
    for the entire duration. This ensures the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Helpers shared by the engine tests
# ============================================================================


def match_of(manager: BracketManager, stage_id: int, group: int, round_: int, number: int):
    """Match at (group number, round number, match number), freshly read"""
    match = match_at(manager.storage, stage_id, (group, round_, number))
    assert match is not None, f"no match at {(group, round_, number)}"
    return match


def win(manager: BracketManager, match_id: int, side: str = "opponent1", **extra):
    """Record a plain win for one side"""
    return manager.update_match({"id": match_id, side: {"result": "win"}, **extra})


def play_out(manager: BracketManager, stage_id: int, side: str = "opponent1") -> int:
    """Let ``side`` win every playable match until nothing is left to play. Returns matches played."""
    played = 0
    while True:
        ready = [
            m
            for m in manager.storage.select("match", {"stage_id": stage_id})
            if m.status == MatchStatus.READY
        ]
        if not ready:
            return played
        for match in ready:
            win(manager, match.id, side)
            played += 1
