from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from talkwell.db.session import get_async_session
from talkwell.schemas import ConditionCreate, ConditionOut, ConditionUpdate
from talkwell import crud

router = APIRouter()


async def _require_patient(db: AsyncSession, patient_id: UUID) -> None:
    if not await crud.get_patient(db, patient_id):
        raise HTTPException(status_code=404, detail="Patient not found")


@router.get("/{patient_id}/conditions", response_model=list[ConditionOut])
async def list_conditions(
    patient_id: UUID,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_async_session),
):
    await _require_patient(db, patient_id)
    return await crud.list_conditions(db, patient_id, status=status)


@router.post("/{patient_id}/conditions", response_model=ConditionOut, status_code=201)
async def create_condition(
    patient_id: UUID,
    payload: ConditionCreate,
    db: AsyncSession = Depends(get_async_session),
):
    await _require_patient(db, patient_id)
    return await crud.create_condition(db, patient_id, payload)


@router.put("/{patient_id}/conditions/{condition_id}", response_model=ConditionOut)
async def update_condition(
    patient_id: UUID,
    condition_id: UUID,
    payload: ConditionUpdate,
    db: AsyncSession = Depends(get_async_session),
):
    condition = await crud.get_condition(db, patient_id, condition_id)
    if not condition:
        raise HTTPException(status_code=404, detail="Condition not found")
    return await crud.update_condition(db, condition, payload)


@router.delete("/{patient_id}/conditions/{condition_id}", status_code=204)
async def delete_condition(
    patient_id: UUID,
    condition_id: UUID,
    db: AsyncSession = Depends(get_async_session),
):
    condition = await crud.get_condition(db, patient_id, condition_id)
    if not condition:
        raise HTTPException(status_code=404, detail="Condition not found")
    await crud.delete_condition(db, condition)
    return Response(status_code=204)
