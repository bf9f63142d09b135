from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talkwell.consultation.context import RECENT_CONSULTATION_LIMIT
from talkwell.consultation.state import (
    ConditionSnapshot,
    ConsultationSnapshot,
    ConsultationSummary,
    PatientSnapshot,
    ProfileSnapshot,
)
from talkwell.db.models import Consultation, MedicalCondition, PatientProfile
from talkwell.schemas import ConditionCreate, ConditionUpdate, PatientCreate, PatientUpdate


# ---------------------------------------------------------------------------
# Patient profiles
# ---------------------------------------------------------------------------

async def create_patient(db: AsyncSession, payload: PatientCreate) -> PatientProfile:
    patient = PatientProfile(**payload.model_dump(exclude_none=True))
    db.add(patient)
    await db.commit()
    await db.refresh(patient)
    return patient


async def get_patient(db: AsyncSession, patient_id: UUID):
    q = await db.execute(select(PatientProfile).where(PatientProfile.id == patient_id))
    return q.scalars().first()


async def list_patients(db: AsyncSession, limit: int = 100):
    q = await db.execute(select(PatientProfile).limit(limit))
    return q.scalars().all()


async def update_patient(db: AsyncSession, patient: PatientProfile, payload: PatientUpdate) -> PatientProfile:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(patient, field, value)
    patient.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(patient)
    return patient


# ---------------------------------------------------------------------------
# Medical conditions
# ---------------------------------------------------------------------------

async def list_conditions(db: AsyncSession, patient_id: UUID, status: Optional[str] = None):
    stmt = select(MedicalCondition).where(MedicalCondition.patient_id == patient_id)
    if status:
        stmt = stmt.where(MedicalCondition.status == status)
    q = await db.execute(stmt.order_by(MedicalCondition.created_at))
    return q.scalars().all()


async def get_condition(db: AsyncSession, patient_id: UUID, condition_id: UUID):
    q = await db.execute(
        select(MedicalCondition)
        .where(MedicalCondition.id == condition_id)
        .where(MedicalCondition.patient_id == patient_id)
    )
    return q.scalars().first()


async def create_condition(db: AsyncSession, patient_id: UUID, payload: ConditionCreate) -> MedicalCondition:
    condition = MedicalCondition(patient_id=patient_id, **payload.model_dump())
    db.add(condition)
    await db.commit()
    await db.refresh(condition)
    return condition


async def update_condition(db: AsyncSession, condition: MedicalCondition, payload: ConditionUpdate) -> MedicalCondition:
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(condition, field, value)
    condition.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(condition)
    return condition


async def delete_condition(db: AsyncSession, condition: MedicalCondition) -> None:
    await db.delete(condition)
    await db.commit()


# ---------------------------------------------------------------------------
# Consultations
# ---------------------------------------------------------------------------

def _summary_columns(summary: ConsultationSummary) -> dict:
    return {
        "summary": summary.summary_text,
        "symptoms": summary.symptoms_text,
        "assessment": summary.assessment_text,
        "follow_up": summary.follow_up_text,
        "disclaimer": summary.disclaimer_text,
        "duration_seconds": summary.duration_seconds,
        "transcript": summary.transcript_text,
    }


async def list_consultations(db: AsyncSession, patient_id: UUID, limit: Optional[int] = None):
    stmt = (
        select(Consultation)
        .where(Consultation.patient_id == patient_id)
        .order_by(Consultation.created_at.desc(), Consultation.id)
    )
    if limit:
        stmt = stmt.limit(limit)
    q = await db.execute(stmt)
    return q.scalars().all()


async def get_consultation(db: AsyncSession, patient_id: UUID, consultation_id: UUID):
    q = await db.execute(
        select(Consultation)
        .where(Consultation.id == consultation_id)
        .where(Consultation.patient_id == patient_id)
    )
    return q.scalars().first()


async def create_consultation(db: AsyncSession, patient_id: UUID, summary: ConsultationSummary) -> Consultation:
    consultation = Consultation(patient_id=patient_id, **_summary_columns(summary))
    db.add(consultation)
    await db.commit()
    await db.refresh(consultation)
    return consultation


async def update_consultation(db: AsyncSession, consultation: Consultation, summary: ConsultationSummary) -> Consultation:
    for field, value in _summary_columns(summary).items():
        setattr(consultation, field, value)
    consultation.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(consultation)
    return consultation


# ---------------------------------------------------------------------------
# Snapshot for the voice assistant
# ---------------------------------------------------------------------------

async def load_patient_snapshot(db: AsyncSession, patient_id: UUID) -> PatientSnapshot:
    patient = await get_patient(db, patient_id)
    conditions = await list_conditions(db, patient_id, status="active")
    recent = await list_consultations(db, patient_id, limit=RECENT_CONSULTATION_LIMIT)

    return PatientSnapshot(
        profile=ProfileSnapshot.model_validate(patient) if patient else None,
        conditions=[ConditionSnapshot.model_validate(c) for c in conditions],
        # oldest first, matching the order they are rendered in
        recent_consultations=[ConsultationSnapshot.model_validate(c) for c in reversed(recent)],
    )
