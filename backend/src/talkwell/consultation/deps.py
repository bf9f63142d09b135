"""
Consultation dependencies: the voice engine plus the two data boundaries.

Controllers receive these through ``build_consultation_deps()`` so tests can
swap in fakes without touching the database or the network.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable
from uuid import UUID

from talkwell import crud
from talkwell.consultation.state import ConsultationSummary, PatientSnapshot
from talkwell.core.config import settings
from talkwell.db.session import AsyncSessionLocal
from talkwell.voice.engine import VapiEngine, VoiceEngine

logger = logging.getLogger(__name__)


@dataclass
class ConsultationDeps:
    engine: VoiceEngine
    load_snapshot: Callable[[str], Awaitable[PatientSnapshot]]
    save_summary: Callable[[str, ConsultationSummary], Awaitable[UUID]]
    update_summary: Callable[[str, UUID, ConsultationSummary], Awaitable[UUID]]
    expects_end_report: bool = True
    grace_seconds: float = 5.0
    tick_seconds: float = 1.0
    # placing a call is a single bounded attempt; only stop is retried
    engine_timeout: float = 30.0
    stop_retries: int = 0


async def load_snapshot(patient_id: str) -> PatientSnapshot:
    async with AsyncSessionLocal() as db:
        return await crud.load_patient_snapshot(db, UUID(patient_id))


async def save_summary(patient_id: str, summary: ConsultationSummary) -> UUID:
    async with AsyncSessionLocal() as db:
        try:
            record = await crud.create_consultation(db, UUID(patient_id), summary)
        except Exception:
            await db.rollback()
            raise
        logger.info("Consultation %s saved for patient %s", record.id, patient_id)
        return record.id


async def update_summary(patient_id: str, consultation_id: UUID, summary: ConsultationSummary) -> UUID:
    async with AsyncSessionLocal() as db:
        record = await crud.get_consultation(db, UUID(patient_id), consultation_id)
        if record is None:
            raise LookupError(f"Consultation {consultation_id} not found for patient {patient_id}")
        try:
            record = await crud.update_consultation(db, record, summary)
        except Exception:
            await db.rollback()
            raise
        logger.info("Consultation %s updated for patient %s", record.id, patient_id)
        return record.id


def build_consultation_deps(engine: VoiceEngine = None) -> ConsultationDeps:
    return ConsultationDeps(
        engine=engine or VapiEngine(),
        load_snapshot=load_snapshot,
        save_summary=save_summary,
        update_summary=update_summary,
        expects_end_report=settings.VOICE_EXPECTS_END_REPORT,
        grace_seconds=settings.VOICE_END_GRACE_SECONDS,
        tick_seconds=settings.VOICE_TICK_SECONDS,
        engine_timeout=settings.AI_TIMEOUT_SECONDS,
        stop_retries=settings.AI_RETRIES,
    )
