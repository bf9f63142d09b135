from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    ACTIVE = "active"
    ENDING = "ending"
    SUMMARIZING = "summarizing"
    SUMMARIZED = "summarized"
    FAILED = "failed"


# States from which a new session may be started
STARTABLE_STATES = {SessionState.IDLE, SessionState.FAILED, SessionState.SUMMARIZED}

# States in which the engine may still stream call content
LIVE_STATES = {SessionState.CONNECTING, SessionState.ACTIVE, SessionState.ENDING}


class Role(str, Enum):
    PATIENT = "patient"
    ASSISTANT = "assistant"


ROLE_LABELS = {
    Role.PATIENT: "Patient",
    Role.ASSISTANT: "AI Nurse",
}


class TranscriptMessage(BaseModel):
    role: Role
    text: str
    timestamp: datetime


class PartialUtterance(BaseModel):
    role: Role
    text: str


class ConsultationSummary(BaseModel):
    summary_text: str
    symptoms_text: str
    assessment_text: str
    follow_up_text: str
    disclaimer_text: str
    duration_seconds: int
    transcript_text: str


# ---------------------------------------------------------------------------
# Read-only patient data used for grounding and fallback text
# ---------------------------------------------------------------------------

class _Snapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)


class ProfileSnapshot(_Snapshot):
    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    preferred_language: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None


class ConditionSnapshot(_Snapshot):
    condition_name: str
    severity: Optional[str] = None
    status: Optional[str] = None
    onset_date: Optional[date] = None
    description: Optional[str] = None


class ConsultationSnapshot(_Snapshot):
    created_at: datetime
    summary: str
    symptoms: Optional[str] = None
    follow_up: Optional[str] = None


class PatientSnapshot(_Snapshot):
    profile: Optional[ProfileSnapshot] = None
    conditions: List[ConditionSnapshot] = Field(default_factory=list)
    recent_consultations: List[ConsultationSnapshot] = Field(default_factory=list)


class Session(BaseModel):
    """One voice consultation attempt, owned by the lifecycle state machine."""

    state: SessionState = SessionState.IDLE
    initial_complaint: str = ""
    call_id: Optional[str] = None

    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    elapsed_seconds: int = 0
    duration_seconds: Optional[int] = None

    messages: List[TranscriptMessage] = Field(default_factory=list)
    pending_partial: Optional[PartialUtterance] = None
    assistant_speaking: bool = False

    engine_analysis: Optional[str] = None
    engine_transcript: Optional[str] = None

    last_error: Optional[str] = None

    summary: Optional[ConsultationSummary] = None
    summary_error: Optional[str] = None
    consultation_id: Optional[UUID] = None
    summary_saved: bool = False
    save_error: Optional[str] = None
