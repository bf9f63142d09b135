import logging
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket
from pydantic import ValidationError

from talkwell.consultation import events as ev
from talkwell.consultation.controller import ConsultationController
from talkwell.consultation.deps import ConsultationDeps
from talkwell.consultation.lifecycle import Transition
from talkwell.consultation.state import ConsultationSummary, Session
from talkwell.schemas import ConsultationWrite, Message
from talkwell.voice.messages import call_id_of, parse_engine_message, patient_id_of

logger = logging.getLogger("ws_manager")


def session_payload(patient_id: str, session: Session) -> dict:
    return {"type": "session", "patient_id": patient_id, "session": session.model_dump(mode="json")}


class ConnectionManager:
    def __init__(self) -> None:
        self.active: Dict[str, Set[WebSocket]] = {}
        self.controllers: Dict[str, ConsultationController] = {}
        self._deps: Optional[ConsultationDeps] = None

    def set_deps(self, deps: ConsultationDeps) -> None:
        self._deps = deps
        logger.info("Consultation dependencies connected to ws_manager")

    def controller(self, patient_id: str) -> ConsultationController:
        if self._deps is None:
            raise RuntimeError("Consultation dependencies not initialized")
        ctrl = self.controllers.get(patient_id)
        if ctrl is None:
            async def _notify(session: Session, error: Optional[str]) -> None:
                await self._on_session_change(patient_id, session, error)

            ctrl = ConsultationController(patient_id, self._deps, on_change=_notify)
            self.controllers[patient_id] = ctrl
        return ctrl

    def find_by_call_id(self, call_id: str) -> Optional[ConsultationController]:
        for ctrl in self.controllers.values():
            if ctrl.session.call_id == call_id:
                return ctrl
        return None

    async def connect(self, patient_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active.setdefault(patient_id, set()).add(websocket)
        logger.info("WebSocket connected for patient %s", patient_id)
        ctrl = self.controllers.get(patient_id)
        session = ctrl.session if ctrl else Session()
        await websocket.send_json(session_payload(patient_id, session))

    async def disconnect(self, patient_id: str, websocket: WebSocket) -> None:
        conns = self.active.get(patient_id)
        if not conns:
            return
        conns.discard(websocket)
        if not conns:
            self.active.pop(patient_id, None)
        logger.info("WebSocket disconnected for patient %s", patient_id)

    async def broadcast(self, patient_id: str, message: dict) -> None:
        conns = self.active.get(patient_id, set())
        dead: Set[WebSocket] = set()
        for ws in list(conns):
            try:
                await ws.send_json(message)
            except Exception:
                dead.add(ws)
                logger.exception("Failed to send websocket message (patient=%s)", patient_id)

        for ws in dead:
            conns.discard(ws)
        if not conns and patient_id in self.active:
            self.active.pop(patient_id, None)

    async def _on_session_change(self, patient_id: str, session: Session, error: Optional[str]) -> None:
        if error:
            await self.broadcast(patient_id, {"type": "error", "detail": error})
        await self.broadcast(patient_id, session_payload(patient_id, session))

    async def handle_incoming_message(self, patient_id: str, data: Dict[str, Any]) -> Optional[Transition]:
        try:
            message = Message.model_validate(data)
        except ValidationError:
            await self.broadcast(patient_id, {"type": "error", "detail": "Invalid message"})
            return None

        if message.type == "start":
            event = ev.StartRequested(complaint=message.complaint or "")
        elif message.type == "end":
            event = ev.EndRequested()
        elif message.type == "dismiss":
            event = ev.Dismissed()
        elif message.type == "edit":
            try:
                edited = ConsultationWrite.model_validate(message.summary or {})
            except ValidationError:
                await self.broadcast(patient_id, {"type": "error", "detail": "Invalid consultation summary"})
                return None
            event = ev.SummaryEdited(summary=ConsultationSummary(**edited.model_dump()))
        elif message.type == "engine":
            event = parse_engine_message(message.message)
            if event is None:
                return None
        else:
            await self.broadcast(patient_id, {"type": "error", "detail": f"Unknown message type: {message.type}"})
            return None

        return await self.controller(patient_id).dispatch(event)

    async def handle_webhook(self, payload: Dict[str, Any]) -> Optional[Transition]:
        event = parse_engine_message(payload)
        if event is None:
            return None

        ctrl = None
        call_id = call_id_of(payload)
        if call_id:
            ctrl = self.find_by_call_id(call_id)
        if ctrl is None:
            patient_id = patient_id_of(payload)
            if patient_id and patient_id in self.controllers:
                ctrl = self.controllers[patient_id]
                if call_id and ctrl.session.call_id not in (None, call_id):
                    ctrl = None
        if ctrl is None:
            logger.info("Webhook for unknown call %s ignored (%s)", call_id, event.kind)
            return None
        return await ctrl.dispatch(event)

    async def shutdown(self) -> None:
        for ctrl in list(self.controllers.values()):
            await ctrl.shutdown()
        self.controllers.clear()


manager = ConnectionManager()
