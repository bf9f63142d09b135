import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from talkwell.consultation.context import build_snapshot_context
from talkwell.db.session import get_async_session
from talkwell.schemas import PatientContextOut, PatientCreate, PatientOut, PatientUpdate
from talkwell import crud

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[PatientOut])
async def list_patients(db: AsyncSession = Depends(get_async_session)):
    return await crud.list_patients(db)


@router.get("/{patient_id}", response_model=PatientOut)
async def get_patient(patient_id: UUID, db: AsyncSession = Depends(get_async_session)):
    p = await crud.get_patient(db, patient_id)
    if not p:
        raise HTTPException(status_code=404, detail="Patient not found")
    return p


@router.post("", response_model=PatientOut, status_code=201)
async def create_patient(payload: PatientCreate, db: AsyncSession = Depends(get_async_session)):
    return await crud.create_patient(db, payload)


@router.put("/{patient_id}", response_model=PatientOut)
async def update_patient(patient_id: UUID, payload: PatientUpdate, db: AsyncSession = Depends(get_async_session)):
    p = await crud.get_patient(db, patient_id)
    if not p:
        raise HTTPException(status_code=404, detail="Patient not found")
    p = await crud.update_patient(db, p, payload)
    logger.info("Profile updated for patient %s", patient_id)
    return p


@router.get("/{patient_id}/context", response_model=PatientContextOut)
async def patient_context(
    patient_id: UUID,
    complaint: Optional[str] = "",
    db: AsyncSession = Depends(get_async_session),
):
    """Preview the grounding text the voice assistant would receive."""
    p = await crud.get_patient(db, patient_id)
    if not p:
        raise HTTPException(status_code=404, detail="Patient not found")

    snapshot = await crud.load_patient_snapshot(db, patient_id)
    return PatientContextOut(
        patient_id=patient_id,
        snapshot=snapshot,
        context=build_snapshot_context(snapshot, complaint or ""),
    )
