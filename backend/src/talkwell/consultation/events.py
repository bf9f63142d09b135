"""
Tagged union of everything that can drive a consultation session.

Three sources feed the lifecycle: the user (start / end / dismiss, and edits
to the finished summary), the voice engine (call and transcript events) and the
controller itself (timer ticks, grace expiry, summary completion and saves).
All of them share the ``kind`` tag so a payload from the WebSocket or the
webhook can be validated in one step.
"""

from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field, TypeAdapter

from talkwell.consultation.state import ConsultationSummary, Role


# ---- user actions ----

class StartRequested(BaseModel):
    kind: Literal["start_requested"] = "start_requested"
    complaint: str = ""


class EndRequested(BaseModel):
    kind: Literal["end_requested"] = "end_requested"


class Dismissed(BaseModel):
    kind: Literal["dismissed"] = "dismissed"


# ---- engine events ----

class CallCreated(BaseModel):
    kind: Literal["call_created"] = "call_created"
    call_id: str


class CallStarted(BaseModel):
    kind: Literal["call_started"] = "call_started"


class CallEnded(BaseModel):
    kind: Literal["call_ended"] = "call_ended"
    reason: Optional[str] = None


class SpeechStarted(BaseModel):
    kind: Literal["speech_started"] = "speech_started"
    role: Role


class SpeechEnded(BaseModel):
    kind: Literal["speech_ended"] = "speech_ended"
    role: Role


class TranscriptReceived(BaseModel):
    kind: Literal["transcript"] = "transcript"
    role: Role
    text: str
    transcript_type: Literal["partial", "final"] = "final"


class CallAnalysis(BaseModel):
    kind: Literal["call_analysis"] = "call_analysis"
    analysis: str


class EndOfCallReport(BaseModel):
    kind: Literal["end_of_call_report"] = "end_of_call_report"
    analysis: Optional[str] = None
    transcript: Optional[str] = None


class EngineError(BaseModel):
    kind: Literal["engine_error"] = "engine_error"
    detail: str = "Voice assistant error occurred"


class EngineStartFailed(BaseModel):
    kind: Literal["engine_start_failed"] = "engine_start_failed"
    detail: str


# ---- controller events ----

class TimerTick(BaseModel):
    kind: Literal["timer_tick"] = "timer_tick"


class GraceExpired(BaseModel):
    kind: Literal["grace_expired"] = "grace_expired"


class SummaryReady(BaseModel):
    kind: Literal["summary_ready"] = "summary_ready"
    summary: Optional[ConsultationSummary] = None
    summary_error: Optional[str] = None
    consultation_id: Optional[UUID] = None
    save_error: Optional[str] = None


# ---- summary edits ----

class SummaryEdited(BaseModel):
    kind: Literal["summary_edited"] = "summary_edited"
    summary: ConsultationSummary
    # the record was already written through the consultations API
    already_saved: bool = False


class SummaryPersisted(BaseModel):
    kind: Literal["summary_persisted"] = "summary_persisted"
    consultation_id: Optional[UUID] = None
    save_error: Optional[str] = None


Event = Annotated[
    Union[
        StartRequested,
        EndRequested,
        Dismissed,
        CallCreated,
        CallStarted,
        CallEnded,
        SpeechStarted,
        SpeechEnded,
        TranscriptReceived,
        CallAnalysis,
        EndOfCallReport,
        EngineError,
        EngineStartFailed,
        TimerTick,
        GraceExpired,
        SummaryReady,
        SummaryEdited,
        SummaryPersisted,
    ],
    Field(discriminator="kind"),
]

EVENT_ADAPTER: TypeAdapter = TypeAdapter(Event)
