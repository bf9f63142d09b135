import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional, Set

from talkwell.consultation import events as ev
from talkwell.consultation import lifecycle as lc
from talkwell.consultation.context import build_snapshot_context
from talkwell.consultation.deps import ConsultationDeps
from talkwell.consultation.state import PatientSnapshot, Session, SessionState
from talkwell.consultation.summarizer import summarize
from talkwell.consultation.utils import bounded, log_step, with_retry_timeout
from talkwell.voice.engine import CallConfig

logger = logging.getLogger(__name__)

SAVE_FAILED = "Failed to save consultation summary"

ChangeListener = Callable[[Session, Optional[str]], Awaitable[None]]


class ConsultationController:
    """Owns one patient's session and runs the commands its transitions emit.

    Events are applied one at a time under a lock. Follow-up events produced
    while running commands (summary completion) are drained before the lock is
    released, so listeners only ever see settled states.
    """

    def __init__(
        self,
        patient_id: str,
        deps: ConsultationDeps,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        self.patient_id = patient_id
        self.session = Session()
        self._deps = deps
        self._on_change = on_change
        self._lock = asyncio.Lock()
        self._snapshot = PatientSnapshot()
        self._generation = 0
        self._ticker: Optional[asyncio.Task] = None
        self._grace: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # event ingress
    # ------------------------------------------------------------------

    async def dispatch(self, event: ev.Event) -> lc.Transition:
        async with self._lock:
            first: Optional[lc.Transition] = None
            changed = False
            queue = deque([event])
            while queue:
                current = queue.popleft()
                before = self.session.state
                transition = lc.handle_event(
                    self.session, current, expects_end_report=self._deps.expects_end_report
                )
                if first is None:
                    first = transition
                if transition.ignored:
                    if transition.error:
                        log_step(self.patient_id, "event_rejected", self.session, kind=current.kind, error=transition.error)
                    elif current.kind != "timer_tick":
                        log_step(self.patient_id, "event_ignored", self.session, kind=current.kind)
                    continue

                self.session = transition.session
                changed = True
                if self.session.state != before:
                    log_step(
                        self.patient_id,
                        "transition",
                        self.session,
                        kind=current.kind,
                        frm=before.value,
                    )
                for command in transition.commands:
                    follow = await self._run(command)
                    if follow is not None:
                        queue.append(follow)
            session = self.session

        if self._on_change and (changed or first.error):
            try:
                await self._on_change(session, first.error)
            except Exception:
                logger.exception("Session listener failed (patient=%s)", self.patient_id)
        return first

    # ------------------------------------------------------------------
    # commands
    # ------------------------------------------------------------------

    async def _run(self, command: lc.Command) -> Optional[ev.Event]:
        if isinstance(command, lc.StartEngine):
            self._generation += 1
            self._spawn(self._start_engine(command.complaint, self._generation))
        elif isinstance(command, lc.StopEngine):
            self._spawn(self._stop_engine(command.call_id))
        elif isinstance(command, lc.StartTicker):
            self._cancel(self._ticker)
            self._ticker = asyncio.create_task(self._tick_loop())
        elif isinstance(command, lc.CancelTicker):
            self._cancel(self._ticker)
            self._ticker = None
        elif isinstance(command, lc.StartGraceTimer):
            self._cancel(self._grace)
            self._grace = asyncio.create_task(self._grace_timer())
        elif isinstance(command, lc.CancelGraceTimer):
            self._cancel(self._grace)
            self._grace = None
        elif isinstance(command, lc.Summarize):
            return await self._summarize()
        elif isinstance(command, lc.PersistSummary):
            return await self._persist_edit()
        return None

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    @staticmethod
    def _cancel(task: Optional[asyncio.Task]) -> None:
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _start_engine(self, complaint: str, generation: int) -> None:
        try:
            self._snapshot = await self._deps.load_snapshot(self.patient_id)
        except Exception:
            logger.exception("Failed to load patient snapshot (patient=%s)", self.patient_id)
            self._snapshot = PatientSnapshot()

        context = build_snapshot_context(self._snapshot, complaint)
        log_step(self.patient_id, "engine_start", self.session, context_chars=len(context))
        try:
            # never retried: a second POST would place a second call
            call_id = await bounded(
                self._deps.engine.start(CallConfig(patient_id=self.patient_id, context=context)),
                self._deps.engine_timeout,
            )
        except Exception as e:
            logger.exception("Voice engine start failed (patient=%s)", self.patient_id)
            if generation == self._generation:
                await self.dispatch(
                    ev.EngineStartFailed(
                        detail=f"Failed to start voice consultation: {str(e) or type(e).__name__}. Please try again."
                    )
                )
            return

        transition = None
        if generation == self._generation:
            transition = await self.dispatch(ev.CallCreated(call_id=call_id))
        if transition is None or transition.ignored:
            # the attempt was cancelled or superseded while the engine was dialing
            log_step(self.patient_id, "engine_orphan_call", call_id=call_id)
            await self._stop_engine(call_id)

    async def _stop_engine(self, call_id: Optional[str]) -> None:
        try:
            await with_retry_timeout(
                self._deps.engine.stop,
                call_id,
                timeout=self._deps.engine_timeout,
                retries=self._deps.stop_retries,
            )
        except Exception:
            logger.exception("Voice engine stop failed (patient=%s, call=%s)", self.patient_id, call_id)

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._deps.tick_seconds)
            await self.dispatch(ev.TimerTick())

    async def _grace_timer(self) -> None:
        await asyncio.sleep(self._deps.grace_seconds)
        log_step(self.patient_id, "end_report_timeout", self.session, grace=self._deps.grace_seconds)
        await self.dispatch(ev.GraceExpired())

    async def _summarize(self) -> ev.SummaryReady:
        try:
            summary = summarize(self.session, self._snapshot)
        except Exception as e:
            logger.exception("Failed to summarize consultation (patient=%s)", self.patient_id)
            return ev.SummaryReady(summary_error=f"Failed to process consultation summary: {e}")

        if summary is None:
            log_step(self.patient_id, "summary_skipped", reason="no_messages")
            return ev.SummaryReady()

        try:
            consultation_id = await self._deps.save_summary(self.patient_id, summary)
        except Exception:
            logger.exception("Failed to save consultation (patient=%s)", self.patient_id)
            return ev.SummaryReady(summary=summary, save_error=SAVE_FAILED)

        log_step(self.patient_id, "summary_saved", consultation_id=consultation_id)
        return ev.SummaryReady(summary=summary, consultation_id=consultation_id)

    async def _persist_edit(self) -> ev.SummaryPersisted:
        """Write an edited summary: update the stored record, or create it if
        the first save never happened."""
        summary = self.session.summary
        consultation_id = self.session.consultation_id
        try:
            if consultation_id is None:
                consultation_id = await self._deps.save_summary(self.patient_id, summary)
            else:
                await self._deps.update_summary(self.patient_id, consultation_id, summary)
        except Exception:
            logger.exception("Failed to save edited consultation (patient=%s)", self.patient_id)
            return ev.SummaryPersisted(save_error=SAVE_FAILED)

        log_step(self.patient_id, "summary_updated", consultation_id=consultation_id)
        return ev.SummaryPersisted(consultation_id=consultation_id)

    # ------------------------------------------------------------------
    # lifecycle helpers
    # ------------------------------------------------------------------

    @property
    def has_timer(self) -> bool:
        return self._ticker is not None and not self._ticker.done()

    async def join(self) -> None:
        """Wait for pending engine start/stop work."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def shutdown(self) -> None:
        for task in (self._ticker, self._grace, *self._background):
            self._cancel(task)
        self._ticker = None
        self._grace = None
        if self.session.call_id and self.session.state in (
            SessionState.CONNECTING,
            SessionState.ACTIVE,
        ):
            await self._stop_engine(self.session.call_id)
