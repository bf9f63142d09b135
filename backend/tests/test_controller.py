import asyncio
import logging

from talkwell.consultation import events as ev
from talkwell.consultation.controller import ConsultationController
from talkwell.consultation.lifecycle import COMPLAINT_REQUIRED, NOTHING_TO_EDIT
from talkwell.consultation.state import ConsultationSummary, Role, Session, SessionState
from talkwell.consultation.utils import log_step
from talkwell.voice.engine import VoiceEngineError

PATIENT = "6f1c2f4e-2b7a-4c55-9a53-0d2b1f3f7e11"


async def wait_for_state(controller, state, timeout=1.0):
    async def _poll():
        while controller.session.state != state:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout)


async def connected(deps, **kwargs):
    controller = ConsultationController(PATIENT, deps, **kwargs)
    await controller.dispatch(ev.StartRequested(complaint="persistent headache for 3 days"))
    await controller.join()
    await controller.dispatch(ev.CallStarted())
    return controller


async def test_start_places_call_with_patient_context(make_deps, fake_engine):
    controller = await connected(make_deps())
    try:
        assert controller.session.state == SessionState.ACTIVE
        assert controller.session.call_id == "call-123"
        assert controller.has_timer

        config = fake_engine.start.await_args.args[0]
        assert config.patient_id == PATIENT
        assert '"persistent headache for 3 days"' in config.context
        assert "- Location: Austin, TX" in config.context
    finally:
        await controller.shutdown()


async def test_plain_end_then_report_saves_one_summary(make_deps, summary_store):
    controller = await connected(make_deps())
    for text in ("started 3 days ago", "worse in the morning"):
        await controller.dispatch(ev.TranscriptReceived(role=Role.PATIENT, text=text))
    for _ in range(95):
        await controller.dispatch(ev.TimerTick())

    await controller.dispatch(ev.CallEnded())
    assert controller.session.state == SessionState.ENDING
    assert not controller.has_timer

    await controller.dispatch(ev.EndOfCallReport())
    await controller.dispatch(ev.CallEnded())

    session = controller.session
    assert session.state == SessionState.SUMMARIZED
    assert session.summary_saved
    assert len(summary_store.saved) == 1
    _, summary = summary_store.saved[0]
    assert summary.symptoms_text == "started 3 days ago; worse in the morning"
    assert summary.duration_seconds == 95


async def test_grace_timer_finalizes_without_report(make_deps, summary_store):
    controller = await connected(make_deps(grace_seconds=0.01))
    await controller.dispatch(ev.TranscriptReceived(role=Role.PATIENT, text="chest feels tight"))
    await controller.dispatch(ev.EndRequested())

    await wait_for_state(controller, SessionState.SUMMARIZED)
    await controller.join()

    controller._deps.engine.stop.assert_any_await("call-123")
    assert [s.symptoms_text for _, s in summary_store.saved] == ["chest feels tight"]


async def test_ticker_counts_elapsed_seconds(make_deps):
    controller = await connected(make_deps(tick_seconds=0.01))

    async def _ticked():
        while controller.session.elapsed_seconds < 3:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_ticked(), 1.0)
    await controller.dispatch(ev.EndOfCallReport())
    frozen = controller.session.duration_seconds
    await asyncio.sleep(0.05)

    assert controller.session.elapsed_seconds == frozen
    # no messages were exchanged, so there is nothing to save
    assert controller.session.state == SessionState.SUMMARIZED
    assert controller.session.summary is None


async def test_start_failure_moves_to_failed(make_deps, fake_engine):
    fake_engine.start.side_effect = VoiceEngineError("Vapi is not configured")
    controller = ConsultationController(PATIENT, make_deps())

    await controller.dispatch(ev.StartRequested(complaint="rash on arm"))
    await controller.join()

    assert controller.session.state == SessionState.FAILED
    assert controller.session.last_error.startswith("Failed to start voice consultation: Vapi is not configured")
    assert controller.session.initial_complaint == "rash on arm"


async def test_end_while_connecting_stops_the_late_call(make_deps, fake_engine):
    gate = asyncio.Event()

    async def slow_start(config):
        await gate.wait()
        return "call-late"

    fake_engine.start.side_effect = slow_start
    controller = ConsultationController(PATIENT, make_deps())

    await controller.dispatch(ev.StartRequested(complaint="nausea"))
    await controller.dispatch(ev.EndRequested())
    assert controller.session.state == SessionState.FAILED

    gate.set()
    await controller.join()

    assert controller.session.call_id is None
    fake_engine.stop.assert_any_await("call-late")


async def test_save_failure_is_reported_on_the_session(make_deps, summary_store):
    summary_store.fail = True
    controller = await connected(make_deps())
    await controller.dispatch(ev.TranscriptReceived(role=Role.PATIENT, text="my ear hurts"))
    await controller.dispatch(ev.EndOfCallReport(analysis="Ear pain."))

    session = controller.session
    assert session.state == SessionState.SUMMARIZED
    assert session.summary is not None
    assert not session.summary_saved
    assert session.save_error == "Failed to save consultation summary"


async def test_listener_sees_rejections_and_changes(make_deps):
    seen = []

    async def listener(session, error):
        seen.append((session.state, error))

    controller = ConsultationController(PATIENT, make_deps(), on_change=listener)
    await controller.dispatch(ev.StartRequested(complaint=" "))
    await controller.dispatch(ev.EndRequested())

    assert seen == [(SessionState.IDLE, COMPLAINT_REQUIRED)]


async def test_shutdown_stops_live_call(make_deps, fake_engine):
    controller = await connected(make_deps())
    await controller.shutdown()

    assert not controller.has_timer
    fake_engine.stop.assert_awaited_with("call-123")


async def test_slow_start_times_out_without_placing_a_second_call(make_deps, fake_engine):
    placed = []

    async def slow_start(config):
        placed.append(config.patient_id)
        await asyncio.sleep(1)
        return "call-slow"

    fake_engine.start.side_effect = slow_start
    controller = ConsultationController(PATIENT, make_deps(engine_timeout=0.05, stop_retries=2))

    await controller.dispatch(ev.StartRequested(complaint="dizzy when standing"))
    await controller.join()

    assert placed == [PATIENT]
    assert fake_engine.start.await_count == 1
    assert controller.session.state == SessionState.FAILED
    assert "TimeoutError" in controller.session.last_error


async def test_stop_is_retried_after_a_failure(make_deps, fake_engine):
    fake_engine.stop.side_effect = [VoiceEngineError("502 from Vapi"), None]
    controller = await connected(make_deps(stop_retries=2))

    await controller.dispatch(ev.EndRequested())
    await controller.join()

    assert fake_engine.stop.await_count == 2
    fake_engine.stop.assert_awaited_with("call-123")


async def summarized(deps):
    controller = await connected(deps)
    await controller.dispatch(ev.TranscriptReceived(role=Role.PATIENT, text="pounding on the left side"))
    await controller.dispatch(ev.EndOfCallReport(analysis="Headache. Rest in a dark room."))
    assert controller.session.state == SessionState.SUMMARIZED
    return controller


async def test_edit_updates_the_saved_consultation(make_deps, summary_store):
    controller = await summarized(make_deps())
    cid = controller.session.consultation_id
    edited = controller.session.summary.model_copy(update={"follow_up_text": "Book a visit with a neurologist."})

    transition = await controller.dispatch(ev.SummaryEdited(summary=edited))

    assert transition.error is None
    assert controller.session.summary == edited
    assert controller.session.summary_saved
    assert controller.session.consultation_id == cid
    assert summary_store.updated == [(cid, edited)]
    assert len(summary_store.saved) == 1


async def test_edit_after_failed_save_creates_the_record(make_deps, summary_store):
    summary_store.fail = True
    controller = await summarized(make_deps())
    assert controller.session.save_error

    summary_store.fail = False
    edited = controller.session.summary.model_copy(update={"symptoms_text": "pounding on the left side; nausea"})
    await controller.dispatch(ev.SummaryEdited(summary=edited))

    session = controller.session
    assert session.summary_saved
    assert session.save_error is None
    assert session.consultation_id is not None
    assert summary_store.saved == [(PATIENT, edited)]
    assert summary_store.updated == []


async def test_failed_edit_save_is_reported(make_deps, summary_store):
    controller = await summarized(make_deps())
    summary_store.fail = True
    edited = controller.session.summary.model_copy(update={"follow_up_text": "Call back tomorrow."})

    await controller.dispatch(ev.SummaryEdited(summary=edited))

    assert controller.session.summary == edited
    assert not controller.session.summary_saved
    assert controller.session.save_error == "Failed to save consultation summary"


async def test_edit_during_a_call_is_rejected(make_deps, summary_store):
    controller = await connected(make_deps())
    try:
        transition = await controller.dispatch(ev.SummaryEdited(summary=_any_summary()))
        assert transition.error == NOTHING_TO_EDIT
        assert controller.session.state == SessionState.ACTIVE
        assert summary_store.updated == []
    finally:
        await controller.shutdown()


def _any_summary():
    return ConsultationSummary(
        summary_text="Voice consultation regarding: persistent headache for 3 days",
        symptoms_text="",
        assessment_text="",
        follow_up_text="",
        disclaimer_text="Not medical advice.",
        duration_seconds=0,
        transcript_text="",
    )


def test_log_step_carries_session_state_and_call(caplog):
    session = Session(state=SessionState.ACTIVE, call_id="call-9")
    with caplog.at_level(logging.INFO, logger="consultation"):
        log_step(PATIENT, "transition", session, kind="timer_tick")

    assert caplog.messages == [f"[patient={PATIENT}] transition state=active call=call-9 kind=timer_tick"]
