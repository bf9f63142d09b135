"""
Call lifecycle state machine.

``handle_event`` is a pure function of (session, event): it never touches the
engine, the clock task or the database. It returns the next session together
with the commands the controller has to run. Termination is guarded by state,
so whichever of the user's end request, the engine's plain call-end or the
engine's end-of-call report arrives first is the only one acted upon.

    idle/failed/summarized --start--> connecting --call started--> active
    connecting --engine error / start failure--> failed
    active --end request / call ended--> ending --report / grace--> summarizing
    active --end-of-call report--> summarizing
    summarizing --summary ready--> summarized --dismiss--> idle
    summarized --summary edited--> summarized (persisted again)
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Union

from talkwell.consultation import events as ev
from talkwell.consultation.state import (
    LIVE_STATES,
    STARTABLE_STATES,
    Role,
    Session,
    SessionState,
)
from talkwell.consultation.transcript import apply_utterance

COMPLAINT_REQUIRED = (
    "Please provide context about your current health concern before starting the consultation."
)
ALREADY_RUNNING = "A consultation is already in progress."
CANCELLED_WHILE_CONNECTING = "Consultation cancelled before the call connected."
NOTHING_TO_EDIT = "There is no consultation summary to edit."


# ---------------------------------------------------------------------------
# Commands for the controller
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StartEngine:
    complaint: str


@dataclass(frozen=True)
class StopEngine:
    call_id: Optional[str]


@dataclass(frozen=True)
class StartTicker:
    pass


@dataclass(frozen=True)
class CancelTicker:
    pass


@dataclass(frozen=True)
class StartGraceTimer:
    pass


@dataclass(frozen=True)
class CancelGraceTimer:
    pass


@dataclass(frozen=True)
class Summarize:
    pass


@dataclass(frozen=True)
class PersistSummary:
    pass


Command = Union[
    StartEngine,
    StopEngine,
    StartTicker,
    CancelTicker,
    StartGraceTimer,
    CancelGraceTimer,
    Summarize,
    PersistSummary,
]


@dataclass
class Transition:
    session: Session
    commands: List[Command] = field(default_factory=list)
    error: Optional[str] = None
    ignored: bool = False


def _ignore(session: Session) -> Transition:
    return Transition(session=session, ignored=True)


def _reject(session: Session, message: str) -> Transition:
    return Transition(session=session, error=message, ignored=True)


def _freeze(session: Session, now: datetime) -> None:
    session.duration_seconds = session.elapsed_seconds
    session.ended_at = now


def _begin_ending(
    session: Session, now: datetime, *, stop_engine: bool, expects_end_report: bool
) -> Transition:
    _freeze(session, now)
    commands: List[Command] = [CancelTicker()]
    if stop_engine:
        commands.append(StopEngine(session.call_id))

    if expects_end_report:
        session.state = SessionState.ENDING
        commands.append(StartGraceTimer())
    else:
        session.state = SessionState.SUMMARIZING
        commands.append(Summarize())
    return Transition(session=session, commands=commands)


def _record_report(session: Session, report: ev.EndOfCallReport) -> None:
    if report.analysis and report.analysis.strip():
        session.engine_analysis = report.analysis.strip()
    if report.transcript and report.transcript.strip():
        session.engine_transcript = report.transcript


def _fail(session: Session, detail: str) -> Transition:
    session.state = SessionState.FAILED
    session.last_error = detail
    session.assistant_speaking = False
    session.pending_partial = None
    return Transition(session=session, commands=[CancelTicker(), CancelGraceTimer()], error=detail)


def handle_event(
    session: Session,
    event: ev.Event,
    *,
    expects_end_report: bool = True,
    now: Optional[datetime] = None,
) -> Transition:
    now = now or datetime.now(timezone.utc)
    state = session.state
    new = session.model_copy(deep=True)

    if isinstance(event, ev.StartRequested):
        if state not in STARTABLE_STATES:
            return _reject(session, ALREADY_RUNNING)
        complaint = event.complaint.strip()
        if not complaint and state == SessionState.FAILED:
            complaint = session.initial_complaint
        if not complaint:
            return _reject(session, COMPLAINT_REQUIRED)
        fresh = Session(state=SessionState.CONNECTING, initial_complaint=complaint)
        return Transition(session=fresh, commands=[StartEngine(complaint)])

    if isinstance(event, ev.Dismissed):
        if state in (SessionState.SUMMARIZED, SessionState.FAILED):
            return Transition(session=Session())
        return _ignore(session)

    if isinstance(event, ev.CallCreated):
        if state in LIVE_STATES and new.call_id is None:
            new.call_id = event.call_id
            return Transition(session=new)
        return _ignore(session)

    if isinstance(event, ev.CallStarted):
        if state != SessionState.CONNECTING:
            return _ignore(session)
        new.state = SessionState.ACTIVE
        new.started_at = now
        new.elapsed_seconds = 0
        new.last_error = None
        return Transition(session=new, commands=[StartTicker()])

    if isinstance(event, ev.TimerTick):
        if state != SessionState.ACTIVE:
            return _ignore(session)
        new.elapsed_seconds += 1
        return Transition(session=new)

    if isinstance(event, ev.TranscriptReceived):
        if state not in LIVE_STATES:
            return _ignore(session)
        apply_utterance(new, event, now)
        return Transition(session=new)

    if isinstance(event, (ev.SpeechStarted, ev.SpeechEnded)):
        if state not in LIVE_STATES or event.role != Role.ASSISTANT:
            return _ignore(session)
        new.assistant_speaking = isinstance(event, ev.SpeechStarted)
        return Transition(session=new)

    if isinstance(event, ev.CallAnalysis):
        if state not in (SessionState.ACTIVE, SessionState.ENDING) or not event.analysis.strip():
            return _ignore(session)
        new.engine_analysis = event.analysis.strip()
        return Transition(session=new)

    if isinstance(event, ev.EngineStartFailed):
        if state != SessionState.CONNECTING:
            return _ignore(session)
        return _fail(new, event.detail)

    if isinstance(event, ev.EngineError):
        if state == SessionState.CONNECTING:
            return _fail(new, event.detail)
        if state in (SessionState.ACTIVE, SessionState.ENDING):
            # mid-call errors are telemetry; only a call-end terminates
            new.last_error = event.detail
            return Transition(session=new)
        return _ignore(session)

    if isinstance(event, ev.EndRequested):
        if state == SessionState.ACTIVE:
            return _begin_ending(new, now, stop_engine=True, expects_end_report=expects_end_report)
        if state == SessionState.CONNECTING:
            transition = _fail(new, CANCELLED_WHILE_CONNECTING)
            transition.commands.append(StopEngine(new.call_id))
            return transition
        return _ignore(session)

    if isinstance(event, ev.CallEnded):
        if state != SessionState.ACTIVE:
            return _ignore(session)
        return _begin_ending(new, now, stop_engine=False, expects_end_report=expects_end_report)

    if isinstance(event, ev.EndOfCallReport):
        if state == SessionState.ACTIVE:
            _freeze(new, now)
            _record_report(new, event)
            new.state = SessionState.SUMMARIZING
            return Transition(session=new, commands=[CancelTicker(), Summarize()])
        if state == SessionState.ENDING:
            _record_report(new, event)
            new.state = SessionState.SUMMARIZING
            return Transition(session=new, commands=[CancelGraceTimer(), Summarize()])
        return _ignore(session)

    if isinstance(event, ev.GraceExpired):
        if state != SessionState.ENDING:
            return _ignore(session)
        new.state = SessionState.SUMMARIZING
        return Transition(session=new, commands=[Summarize()])

    if isinstance(event, ev.SummaryReady):
        if state != SessionState.SUMMARIZING:
            return _ignore(session)
        new.state = SessionState.SUMMARIZED
        new.assistant_speaking = False
        new.pending_partial = None
        new.summary = event.summary
        new.summary_error = event.summary_error
        new.consultation_id = event.consultation_id
        new.summary_saved = event.consultation_id is not None
        new.save_error = event.save_error
        return Transition(session=new)

    if isinstance(event, ev.SummaryEdited):
        if state != SessionState.SUMMARIZED or session.summary is None:
            return _reject(session, NOTHING_TO_EDIT)
        new.summary = event.summary
        new.save_error = None
        if event.already_saved:
            new.summary_saved = new.consultation_id is not None
            return Transition(session=new)
        new.summary_saved = False
        return Transition(session=new, commands=[PersistSummary()])

    if isinstance(event, ev.SummaryPersisted):
        if state != SessionState.SUMMARIZED:
            return _ignore(session)
        if event.consultation_id is not None:
            new.consultation_id = event.consultation_id
        new.save_error = event.save_error
        new.summary_saved = event.save_error is None and new.consultation_id is not None
        return Transition(session=new)

    return _ignore(session)
