import uuid

from sqlalchemy import Column, String, Date, Integer, DateTime, ForeignKey, Text, Uuid, func
from sqlalchemy.orm import declarative_base, relationship

from talkwell.consultation.context import compute_age

Base = declarative_base()

class PatientProfile(Base):
    __tablename__ = "patient_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)

    # Demographics (FHIR US Core Patient)
    date_of_birth = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)  # male, female, other, unknown

    phone_number = Column(String(20), nullable=True)
    street_address = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip_code = Column(String(10), nullable=True)
    country = Column(String(50), default="United States")

    emergency_contact_name = Column(String(200), nullable=True)
    emergency_contact_phone = Column(String(20), nullable=True)
    emergency_contact_relationship = Column(String(50), nullable=True)

    insurance_provider = Column(String(200), nullable=True)
    insurance_policy_number = Column(String(100), nullable=True)
    insurance_group_number = Column(String(100), nullable=True)
    medical_record_number = Column(String(50), nullable=True)

    preferred_language = Column(String(50), default="English")
    communication_preference = Column(String(20), default="email")  # email, phone, sms

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    conditions = relationship("MedicalCondition", back_populates="patient", cascade="all, delete-orphan")
    consultations = relationship("Consultation", back_populates="patient", cascade="all, delete-orphan")

    @property
    def age(self):
        return compute_age(self.date_of_birth) if self.date_of_birth else None

class MedicalCondition(Base):
    __tablename__ = "medical_conditions"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patient_profiles.id", ondelete="CASCADE"), nullable=False)
    condition_name = Column(String(255), nullable=False)
    condition_code = Column(String(50), nullable=True)  # ICD-10 or SNOMED
    severity = Column(String(20), nullable=True)  # mild, moderate, severe
    status = Column(String(20), default="active", nullable=False)  # active, inactive, resolved
    onset_date = Column(Date, nullable=True)
    diagnosis_date = Column(Date, nullable=True)
    resolution_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    diagnosed_by = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    patient = relationship("PatientProfile", back_populates="conditions")

class Consultation(Base):
    __tablename__ = "consultations"
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    patient_id = Column(Uuid, ForeignKey("patient_profiles.id", ondelete="CASCADE"), nullable=False)
    summary = Column(Text, nullable=False)
    symptoms = Column(Text, nullable=True)
    assessment = Column(Text, nullable=True)
    follow_up = Column(Text, nullable=True)
    disclaimer = Column(Text, nullable=False)
    duration_seconds = Column(Integer, default=0, nullable=False)
    transcript = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    patient = relationship("PatientProfile", back_populates="consultations")
