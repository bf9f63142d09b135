"""
Translate Vapi messages into consultation events.

Two producers speak roughly the same dialect: the browser SDK (relayed over the
consultation WebSocket) and Vapi's server webhook, which wraps every message in
``{"message": {...}}`` and reports call status through ``status-update``.
Anything unrecognised maps to ``None`` so engines that only send the minimal
event set still work.
"""

import logging
from typing import Any, Dict, Optional

from talkwell.consultation import events as ev
from talkwell.consultation.state import Role

logger = logging.getLogger("voice_messages")

_ROLES = {
    "user": Role.PATIENT,
    "customer": Role.PATIENT,
    "patient": Role.PATIENT,
    "assistant": Role.ASSISTANT,
    "bot": Role.ASSISTANT,
}


def unwrap(payload: Dict[str, Any]) -> Dict[str, Any]:
    inner = payload.get("message")
    if isinstance(inner, dict) and "type" in inner:
        return inner
    return payload


def call_id_of(payload: Dict[str, Any]) -> Optional[str]:
    message = unwrap(payload)
    call = message.get("call") or payload.get("call") or {}
    if isinstance(call, dict) and call.get("id"):
        return str(call["id"])
    return message.get("callId") or payload.get("callId")


def patient_id_of(payload: Dict[str, Any]) -> Optional[str]:
    message = unwrap(payload)
    call = message.get("call") or {}
    metadata = (call.get("metadata") if isinstance(call, dict) else None) or {}
    patient_id = metadata.get("patientId")
    return str(patient_id) if patient_id else None


def _role(value: Any) -> Optional[Role]:
    return _ROLES.get(str(value or "").lower())


def _error_detail(message: Dict[str, Any]) -> str:
    error = message.get("error")
    if isinstance(error, dict):
        error = error.get("message") or error.get("msg")
    return f"Voice assistant error: {error}" if error else "Voice assistant error occurred"


def _analysis_summary(message: Dict[str, Any]) -> Optional[str]:
    analysis = message.get("analysis")
    if isinstance(analysis, dict):
        return analysis.get("summary")
    return None


def parse_engine_message(payload: Dict[str, Any]) -> Optional[ev.Event]:
    message = unwrap(payload)
    kind = message.get("type")

    if kind == "call-start":
        return ev.CallStarted()
    if kind in ("call-end", "hang"):
        return ev.CallEnded(reason=message.get("endedReason"))

    if kind == "status-update":
        status = message.get("status")
        if status == "in-progress":
            return ev.CallStarted()
        if status == "ended":
            return ev.CallEnded(reason=message.get("endedReason"))
        return None

    if kind in ("speech-start", "speech-end", "speech-update"):
        role = _role(message.get("role"))
        if role is None:
            return None
        if kind == "speech-update":
            started = message.get("status") == "started"
        else:
            started = kind == "speech-start"
        return ev.SpeechStarted(role=role) if started else ev.SpeechEnded(role=role)

    if kind == "transcript":
        role = _role(message.get("role"))
        text = message.get("transcript")
        if role is None or not text:
            return None
        transcript_type = "partial" if message.get("transcriptType") == "partial" else "final"
        return ev.TranscriptReceived(role=role, text=text, transcript_type=transcript_type)

    if kind == "call-analysis":
        summary = _analysis_summary(message)
        return ev.CallAnalysis(analysis=summary) if summary else None

    if kind == "end-of-call-report":
        artifact = message.get("artifact") or {}
        return ev.EndOfCallReport(
            analysis=message.get("summary") or _analysis_summary(message),
            transcript=artifact.get("transcript") or message.get("transcript"),
        )

    if kind == "error":
        return ev.EngineError(detail=_error_detail(message))

    logger.debug("Unhandled engine message type: %s", kind)
    return None
