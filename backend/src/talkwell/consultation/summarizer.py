import re
from typing import List, Optional, Tuple

from talkwell.consultation.state import (
    ConsultationSummary,
    PatientSnapshot,
    Session,
)
from talkwell.consultation.transcript import flatten_transcript, patient_utterances

NO_SYMPTOMS = "No specific symptoms mentioned"
ASSESSMENT_PLACEHOLDER = "General consultation - no diagnosis provided"
GENERIC_FOLLOW_UP = "Contact your primary care physician or local healthcare provider"
DISCLAIMER = (
    "This consultation was with an AI assistant and does not constitute professional "
    "medical advice. Please consult with a qualified healthcare professional for proper "
    "medical diagnosis and treatment."
)

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


def split_sentences(text: str) -> List[str]:
    return [s.strip() for s in _SENTENCE_BOUNDARY.split(text.strip()) if s.strip()]


def _terminated(sentence: str) -> str:
    return sentence if sentence.endswith((".", "!", "?")) else sentence + "."


def split_analysis(analysis: str) -> Tuple[str, Optional[str]]:
    """Split engine analysis into (symptoms, follow-up).

    The last sentence becomes the follow-up when there are at least two; a
    single sentence is symptoms only.
    """
    sentences = split_sentences(analysis)
    if len(sentences) >= 2:
        symptoms = " ".join(_terminated(s) for s in sentences[:-1])
        return symptoms, _terminated(sentences[-1])
    if sentences:
        return _terminated(sentences[0]), None
    return "", None


def location_follow_up(snapshot: Optional[PatientSnapshot]) -> str:
    profile = snapshot.profile if snapshot else None
    if profile and profile.city and profile.state:
        return f"Recommended to contact local healthcare providers in {profile.city}, {profile.state}"
    return GENERIC_FOLLOW_UP


def summarize(
    session: Session, snapshot: Optional[PatientSnapshot] = None
) -> Optional[ConsultationSummary]:
    if not session.messages:
        return None

    transcript_text = session.engine_transcript or flatten_transcript(session.messages)

    symptoms = ""
    follow_up = None
    if session.engine_analysis and session.engine_analysis.strip():
        symptoms, follow_up = split_analysis(session.engine_analysis)
    if not symptoms:
        symptoms = "; ".join(patient_utterances(session.messages)) or NO_SYMPTOMS
    if not follow_up:
        follow_up = location_follow_up(snapshot)

    return ConsultationSummary(
        summary_text=f"Voice consultation regarding: {session.initial_complaint}",
        symptoms_text=symptoms,
        assessment_text=ASSESSMENT_PLACEHOLDER,
        follow_up_text=follow_up,
        disclaimer_text=DISCLAIMER,
        duration_seconds=session.duration_seconds or 0,
        transcript_text=transcript_text,
    )
