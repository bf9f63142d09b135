import os

# Settings are read at import time; keep the app engine off any real database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from typing import List, Tuple
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from talkwell.consultation.deps import ConsultationDeps
from talkwell.consultation.state import ConsultationSummary, PatientSnapshot, ProfileSnapshot
from talkwell.db import models
from talkwell.db.session import build_engine, build_sessionmaker, init_db

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")


@pytest.fixture
async def engine():
    """Async engine for tests.

    Uses TEST_DATABASE_URL when set, otherwise a shared in-memory SQLite
    database that lives for the duration of one test.
    """
    engine = build_engine(TEST_DATABASE_URL or "sqlite+aiosqlite:///:memory:")
    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(models.Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_sessionmaker(engine)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        # rollback any lingering transaction state between tests
        await session.rollback()


# ---------------------------------------------------------------------------
# Consultation fakes
# ---------------------------------------------------------------------------

class SummaryStore:
    """Stands in for the consultations table."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.saved: List[Tuple[str, ConsultationSummary]] = []
        self.updated: List[Tuple[UUID, ConsultationSummary]] = []

    async def save(self, patient_id: str, summary: ConsultationSummary) -> UUID:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.saved.append((patient_id, summary))
        return uuid4()

    async def update(self, patient_id: str, consultation_id: UUID, summary: ConsultationSummary) -> UUID:
        if self.fail:
            raise RuntimeError("database unavailable")
        self.updated.append((consultation_id, summary))
        return consultation_id


@pytest.fixture
def fake_engine() -> AsyncMock:
    engine = AsyncMock()
    engine.start.return_value = "call-123"
    engine.stop.return_value = None
    return engine


@pytest.fixture
def summary_store() -> SummaryStore:
    return SummaryStore()


@pytest.fixture
def snapshot() -> PatientSnapshot:
    return PatientSnapshot(profile=ProfileSnapshot(city="Austin", state="TX", gender="female"))


@pytest.fixture
def make_deps(fake_engine, summary_store, snapshot):
    def _make(**overrides) -> ConsultationDeps:
        async def load_snapshot(patient_id: str) -> PatientSnapshot:
            return snapshot

        params = dict(
            engine=fake_engine,
            load_snapshot=load_snapshot,
            save_summary=summary_store.save,
            update_summary=summary_store.update,
            expects_end_report=True,
            grace_seconds=0.05,
            # ticks are driven by hand unless a test opts in
            tick_seconds=3600,
            engine_timeout=1.0,
            stop_retries=0,
        )
        params.update(overrides)
        return ConsultationDeps(**params)

    return _make
