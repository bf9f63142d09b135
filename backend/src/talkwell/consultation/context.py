"""
Grounding text for the voice assistant.

The assistant prompt is assembled from fixed blocks so its shape never changes
between patients: every section is always present and missing values render as
explicit placeholders.
"""

from datetime import date
from typing import Optional, Sequence

from talkwell.consultation.state import (
    ConditionSnapshot,
    ConsultationSnapshot,
    PatientSnapshot,
    ProfileSnapshot,
)

RECENT_CONSULTATION_LIMIT = 3

PREAMBLE = """You are a compassionate AI nurse assistant helping a patient. You should provide helpful, general medical guidance while always emphasizing that this is not a substitute for professional medical care.

IMPORTANT DISCLAIMERS TO ALWAYS REMEMBER:
- Always remind patients that this is general guidance, not professional medical advice
- Encourage patients to consult with healthcare professionals for proper diagnosis and treatment
- Provide local hospital/clinic contact information when appropriate
- Be empathetic and supportive while maintaining professional boundaries
"""

CLOSING = """RESPONSE GUIDELINES:
- Be warm, empathetic, and professional
- Ask clarifying questions to better understand their situation
- Provide general health guidance and comfort
- Always remind them to seek professional medical care for proper diagnosis
- If they mention symptoms that could be serious, gently encourage immediate medical attention
- Offer to help them find local healthcare resources
- Keep responses conversational and not overly clinical
- End conversations with a summary and next steps

Remember: You are providing supportive guidance, not medical diagnosis or treatment."""


def compute_age(dob: date, today: Optional[date] = None) -> int:
    today = today or date.today()
    return today.year - dob.year - ((today.month, today.day) < (dob.month, dob.day))


def _profile_block(profile: Optional[ProfileSnapshot], today: Optional[date]) -> str:
    profile = profile or ProfileSnapshot()
    age = compute_age(profile.date_of_birth, today) if profile.date_of_birth else "Unknown"
    if profile.city and profile.state:
        location = f"{profile.city}, {profile.state}"
    else:
        location = "Not specified"
    if profile.emergency_contact_name:
        relationship = profile.emergency_contact_relationship or "Not specified"
        emergency = f"{profile.emergency_contact_name} ({relationship})"
    else:
        emergency = "Not provided"

    return (
        "PATIENT PROFILE:\n"
        "- Name: Patient (keep confidential)\n"
        f"- Age: {age}\n"
        f"- Gender: {profile.gender or 'Not specified'}\n"
        f"- Location: {location}\n"
        f"- Preferred Language: {profile.preferred_language or 'English'}\n"
        f"- Emergency Contact: {emergency}\n"
    )


def _condition_line(condition: ConditionSnapshot) -> str:
    line = f"- {condition.condition_name}"
    if condition.severity:
        line += f" ({condition.severity})"
    if condition.status:
        line += f" - Status: {condition.status}"
    if condition.onset_date:
        line += f" - Since: {condition.onset_date.isoformat()}"
    if condition.description:
        line += f" - {condition.description}"
    return line


def _conditions_block(conditions: Sequence[ConditionSnapshot]) -> str:
    lines = [_condition_line(c) for c in conditions] or ["- None reported"]
    return "CURRENT MEDICAL CONDITIONS:\n" + "\n".join(lines) + "\n"


def _history_block(consultations: Sequence[ConsultationSnapshot]) -> str:
    recent = list(consultations)[-RECENT_CONSULTATION_LIMIT:]
    header = f"RECENT CONSULTATION HISTORY (Last {RECENT_CONSULTATION_LIMIT}):\n"
    if not recent:
        return header + "- None recorded\n"

    entries = []
    for index, c in enumerate(recent, start=1):
        entries.append(
            f"{index}. {c.created_at.date().isoformat()}:\n"
            f"   - Summary: {c.summary or 'Not specified'}\n"
            f"   - Symptoms: {c.symptoms or 'None recorded'}\n"
            f"   - Follow-up: {c.follow_up or 'None specified'}\n"
        )
    return header + "".join(entries)


def _complaint_block(initial_complaint: str) -> str:
    return (
        "CURRENT CONSULTATION CONTEXT:\n"
        f'The patient has indicated: "{initial_complaint}"\n'
        "\n"
        "Please address their current concern while considering their medical history and past consultations.\n"
    )


def build_context(
    profile: Optional[ProfileSnapshot],
    conditions: Sequence[ConditionSnapshot],
    recent_consultations: Sequence[ConsultationSnapshot],
    initial_complaint: str,
    today: Optional[date] = None,
) -> str:
    blocks = [
        PREAMBLE,
        _profile_block(profile, today),
        _conditions_block(conditions or []),
        _history_block(recent_consultations or []),
        _complaint_block(initial_complaint),
        CLOSING,
    ]
    return "\n".join(blocks)


def build_snapshot_context(
    snapshot: PatientSnapshot, initial_complaint: str, today: Optional[date] = None
) -> str:
    return build_context(
        snapshot.profile,
        snapshot.conditions,
        snapshot.recent_consultations,
        initial_complaint,
        today=today,
    )
