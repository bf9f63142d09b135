from datetime import date, datetime
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from talkwell.consultation.state import ConsultationSummary, PatientSnapshot, Session


class ORMBase(BaseModel):
    model_config = ConfigDict(from_attributes=True)


PHONE_PATTERN = r"^\+?[1-9]\d{0,15}$"
ZIP_PATTERN = r"^\d{5}(-\d{4})?$"

Gender = Literal["male", "female", "other", "unknown"]
Severity = Literal["mild", "moderate", "severe"]
ConditionStatus = Literal["active", "inactive", "resolved"]
CommunicationPreference = Literal["email", "phone", "sms"]


class PatientBase(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=100)
    last_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    street_address: Optional[str] = Field(default=None, max_length=255)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=50)
    zip_code: Optional[str] = Field(default=None, pattern=ZIP_PATTERN)
    country: Optional[str] = Field(default=None, max_length=50)
    emergency_contact_name: Optional[str] = Field(default=None, max_length=200)
    emergency_contact_phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    emergency_contact_relationship: Optional[str] = Field(default=None, max_length=50)
    insurance_provider: Optional[str] = Field(default=None, max_length=200)
    insurance_policy_number: Optional[str] = Field(default=None, max_length=100)
    insurance_group_number: Optional[str] = Field(default=None, max_length=100)
    medical_record_number: Optional[str] = Field(default=None, max_length=50)
    preferred_language: Optional[str] = Field(default=None, max_length=50)
    communication_preference: Optional[CommunicationPreference] = None


class PatientCreate(PatientBase):
    pass


class PatientUpdate(PatientBase):
    pass


class PatientOut(ORMBase):
    id: UUID
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    phone_number: Optional[str] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None
    emergency_contact_name: Optional[str] = None
    emergency_contact_phone: Optional[str] = None
    emergency_contact_relationship: Optional[str] = None
    insurance_provider: Optional[str] = None
    insurance_policy_number: Optional[str] = None
    insurance_group_number: Optional[str] = None
    medical_record_number: Optional[str] = None
    preferred_language: Optional[str] = None
    communication_preference: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConditionCreate(BaseModel):
    condition_name: str = Field(min_length=1, max_length=255)
    condition_code: Optional[str] = Field(default=None, max_length=50)
    severity: Optional[Severity] = None
    status: ConditionStatus = "active"
    onset_date: Optional[date] = None
    diagnosis_date: Optional[date] = None
    resolution_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    diagnosed_by: Optional[str] = Field(default=None, max_length=255)


class ConditionUpdate(BaseModel):
    condition_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    condition_code: Optional[str] = Field(default=None, max_length=50)
    severity: Optional[Severity] = None
    status: Optional[ConditionStatus] = None
    onset_date: Optional[date] = None
    diagnosis_date: Optional[date] = None
    resolution_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    diagnosed_by: Optional[str] = Field(default=None, max_length=255)


class ConditionOut(ORMBase):
    id: UUID
    patient_id: UUID
    condition_name: str
    condition_code: Optional[str] = None
    severity: Optional[str] = None
    status: str
    onset_date: Optional[date] = None
    diagnosis_date: Optional[date] = None
    resolution_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    diagnosed_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConsultationOut(ORMBase):
    id: UUID
    patient_id: UUID
    summary: str
    symptoms: Optional[str] = None
    assessment: Optional[str] = None
    follow_up: Optional[str] = None
    disclaimer: str
    duration_seconds: int
    transcript: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ConsultationWrite(ConsultationSummary):
    summary_text: str = Field(min_length=1)
    disclaimer_text: str = Field(min_length=1)
    duration_seconds: int = Field(default=0, ge=0)
    symptoms_text: str = ""
    assessment_text: str = ""
    follow_up_text: str = ""
    transcript_text: str = ""


class PatientContextOut(BaseModel):
    patient_id: UUID
    snapshot: PatientSnapshot
    context: str


class StartConsultation(BaseModel):
    complaint: str = ""


class SessionOut(BaseModel):
    patient_id: str
    session: Session
    error: Optional[str] = None


class Message(BaseModel):
    type: str
    complaint: Optional[str] = None
    # edited summary for type "edit"
    summary: Optional[dict] = None
    message: dict = Field(default_factory=dict)
