from datetime import datetime, timezone
from typing import Iterable, Optional

from talkwell.consultation.events import TranscriptReceived
from talkwell.consultation.state import (
    ROLE_LABELS,
    PartialUtterance,
    Role,
    Session,
    TranscriptMessage,
)


def apply_utterance(
    session: Session, event: TranscriptReceived, now: Optional[datetime] = None
) -> None:
    """Merge one streamed utterance into the session in place.

    A partial replaces whatever is in flight, regardless of role. A final is
    appended to ``messages`` and always clears the in-flight partial.
    """
    if event.transcript_type == "partial":
        session.pending_partial = PartialUtterance(role=event.role, text=event.text)
        return

    session.messages.append(
        TranscriptMessage(
            role=event.role,
            text=event.text,
            timestamp=now or datetime.now(timezone.utc),
        )
    )
    session.pending_partial = None


def flatten_transcript(messages: Iterable[TranscriptMessage]) -> str:
    return "\n".join(f"{ROLE_LABELS[m.role]}: {m.text}" for m in messages)


def patient_utterances(messages: Iterable[TranscriptMessage]) -> list:
    return [m.text for m in messages if m.role == Role.PATIENT]
