# tests/conftest.py
from __future__ import annotations

from collections.abc import Callable, Generator, Iterator
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from community_ledger.core.settings import Settings
from community_ledger.db.session import Base, build_session_factory
from community_ledger.main import LedgerServices, build_services
from community_ledger.schemas import Community, Participant, ProfileImage, UserSummary
from community_ledger.storage import SqlDocumentStore

TEST_DB_URL = "sqlite://"
CREATOR_ID = "creator-1"


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return build_session_factory(engine)


@pytest.fixture()
def test_settings() -> Settings:
    """Settings with the production batching limits and a quiet database."""
    return Settings(
        database_url=TEST_DB_URL,
        storage_batch_limit=500,
        backfill_chunk_size=450,
        sql_debug=False,
    )


@pytest.fixture()
def store(session_factory: sessionmaker[Session], test_settings: Settings) -> SqlDocumentStore:
    return SqlDocumentStore(session_factory, max_batch_size=test_settings.storage_batch_limit)


@pytest.fixture()
def services(test_settings: Settings, session_factory: sessionmaker[Session]) -> LedgerServices:
    return build_services(test_settings, session_factory)


@pytest.fixture()
def frozen_clock() -> Callable[[], datetime]:
    """A clock advancing one second per call from a fixed instant."""
    start = datetime(2026, 1, 5, 12, 0, tzinfo=UTC)
    ticks = count()

    def _clock() -> datetime:
        return start + timedelta(seconds=next(ticks))

    return _clock


def make_summary(user_id: str, name: str | None = None) -> UserSummary:
    """Return a profile snapshot for ``user_id``."""
    name = name or user_id
    return UserSummary(
        id=user_id,
        display_name=name.title(),
        username=name,
        email=f"{name}@example.com",
        level="intermediate",
        profile_image=ProfileImage(profile_image_url=f"https://img.example.com/{name}.png"),
    )


def make_participants(*user_ids: str) -> list[Participant]:
    return [Participant(id=user_id, username=f"user_{user_id}") for user_id in user_ids]


@pytest.fixture()
def creator_summary() -> UserSummary:
    return make_summary(CREATOR_ID, "coach")


@pytest.fixture()
def community(services: LedgerServices, creator_summary: UserSummary) -> Iterator[Community]:
    """A freshly created community counting only its creator."""
    community = services.registry.create_community(
        CREATOR_ID,
        creator_summary,
        "Coach's Club",
        "Train together",
    )
    services.ledger.seed_creator_membership(community)
    yield community


def member_count(services: LedgerServices, community_id: str) -> int:
    """Read the cached counter straight from storage."""
    community = services.registry.get_community_by_id(community_id)
    assert community is not None
    return community.member_count
