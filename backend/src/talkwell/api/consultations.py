from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from talkwell.consultation import events as ev
from talkwell.consultation.lifecycle import COMPLAINT_REQUIRED
from talkwell.consultation.state import ConsultationSummary, SessionState
from talkwell.db.session import get_async_session
from talkwell.schemas import ConsultationOut, ConsultationWrite, SessionOut, StartConsultation
from talkwell.ws_manager import manager
from talkwell import crud

# Stored consultation records, mounted under /patients
router = APIRouter()

# Live voice session control, mounted under /consultations
session_router = APIRouter()


@router.get("/{patient_id}/consultations", response_model=list[ConsultationOut])
async def list_consultations(patient_id: UUID, db: AsyncSession = Depends(get_async_session)):
    if not await crud.get_patient(db, patient_id):
        raise HTTPException(status_code=404, detail="Patient not found")
    return await crud.list_consultations(db, patient_id)


@router.post("/{patient_id}/consultations", response_model=ConsultationOut, status_code=201)
async def create_consultation(
    patient_id: UUID,
    payload: ConsultationWrite,
    db: AsyncSession = Depends(get_async_session),
):
    if not await crud.get_patient(db, patient_id):
        raise HTTPException(status_code=404, detail="Patient not found")
    return await crud.create_consultation(db, patient_id, payload)


@router.put("/{patient_id}/consultations/{consultation_id}", response_model=ConsultationOut)
async def update_consultation(
    patient_id: UUID,
    consultation_id: UUID,
    payload: ConsultationWrite,
    db: AsyncSession = Depends(get_async_session),
):
    consultation = await crud.get_consultation(db, patient_id, consultation_id)
    if not consultation:
        raise HTTPException(status_code=404, detail="Consultation not found")
    updated = await crud.update_consultation(db, consultation, payload)
    # keep an open summary screen showing what was just stored
    ctrl = manager.controllers.get(str(patient_id))
    if (
        ctrl is not None
        and ctrl.session.state == SessionState.SUMMARIZED
        and ctrl.session.consultation_id == consultation_id
    ):
        await ctrl.dispatch(
            ev.SummaryEdited(summary=ConsultationSummary(**payload.model_dump()), already_saved=True)
        )
    return updated


@session_router.get("/{patient_id}/session", response_model=SessionOut)
async def get_session(patient_id: UUID):
    ctrl = manager.controller(str(patient_id))
    return SessionOut(patient_id=str(patient_id), session=ctrl.session)


@session_router.post("/{patient_id}/session/start", response_model=SessionOut)
async def start_session(patient_id: UUID, payload: StartConsultation):
    ctrl = manager.controller(str(patient_id))
    transition = await ctrl.dispatch(ev.StartRequested(complaint=payload.complaint))
    if transition.ignored and transition.error:
        status = 422 if transition.error == COMPLAINT_REQUIRED else 409
        raise HTTPException(status_code=status, detail=transition.error)
    return SessionOut(patient_id=str(patient_id), session=ctrl.session)


@session_router.post("/{patient_id}/session/end", response_model=SessionOut)
async def end_session(patient_id: UUID):
    ctrl = manager.controller(str(patient_id))
    transition = await ctrl.dispatch(ev.EndRequested())
    return SessionOut(patient_id=str(patient_id), session=ctrl.session, error=transition.error)


@session_router.post("/{patient_id}/session/dismiss", response_model=SessionOut)
async def dismiss_session(patient_id: UUID):
    ctrl = manager.controller(str(patient_id))
    await ctrl.dispatch(ev.Dismissed())
    return SessionOut(patient_id=str(patient_id), session=ctrl.session)


@session_router.post("/{patient_id}/session/summary", response_model=SessionOut)
async def edit_session_summary(patient_id: UUID, payload: ConsultationWrite):
    ctrl = manager.controller(str(patient_id))
    transition = await ctrl.dispatch(ev.SummaryEdited(summary=ConsultationSummary(**payload.model_dump())))
    if transition.ignored and transition.error:
        raise HTTPException(status_code=409, detail=transition.error)
    return SessionOut(patient_id=str(patient_id), session=ctrl.session, error=ctrl.session.save_error)
