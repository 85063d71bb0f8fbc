"""Tests for the recording session state machine."""

from unittest.mock import MagicMock

import pytest

from matchcam.capture.base import CaptureSource
from matchcam.errors import CaptureError
from matchcam.feedback import Notifier
from matchcam.session import (
    CompletedRecording,
    ConsentPrompt,
    RecordingSession,
    SessionContext,
    SessionState,
)
from matchcam.storage import RecordingStore


@pytest.fixture
def launched():
    return []


@pytest.fixture
def consent():
    return MagicMock(spec=ConsentPrompt)


@pytest.fixture
def notifier(config) -> Notifier:
    return Notifier(config)


@pytest.fixture
def context() -> SessionContext:
    return SessionContext()


def _make_session(config, context, backend, scheduler, clock, launched, notifier, consent):
    return RecordingSession(
        config,
        context,
        backend,
        RecordingStore(config),
        scheduler,
        launch_pipeline=launched.append,
        notifier=notifier,
        consent=consent,
        clock=clock,
    )


@pytest.fixture
def session(config, context, backend, scheduler, clock, launched, notifier, consent):
    return _make_session(config, context, backend, scheduler, clock, launched, notifier, consent)


@pytest.fixture
def manual_session(config, context, backend, scheduler, clock, launched, notifier, consent):
    config.recording.auto_record = False
    return _make_session(config, context, backend, scheduler, clock, launched, notifier, consent)


def test_started_moves_to_detected(session, clock) -> None:
    session.on_process_started()

    assert session.state == SessionState.DETECTED
    expected_ms = int(clock() * 1000)
    assert session.session.session_id == f"MATCH_{expected_ms}"
    assert session.session.start_time_ms == expected_ms


def test_capture_waits_for_load_grace(session, backend, scheduler) -> None:
    session.on_process_started()

    scheduler.advance(4.9)
    assert session.state == SessionState.DETECTED
    assert backend.started == []

    scheduler.advance(0.1)
    assert session.state == SessionState.CAPTURING
    assert backend.started[0].name == "League of Legends"


def test_capture_uses_quality_preset(session, backend, scheduler, config) -> None:
    config.recording.quality = "high"
    session.on_process_started()
    scheduler.advance(5)

    assert backend.qualities == [{"width": 1280, "height": 720, "frame_rate": 30, "bitrate": 1_500_000}]


def test_recording_started_notification(session, scheduler, notifier) -> None:
    session.on_process_started()
    scheduler.advance(5)

    last = notifier.recent()[-1]
    assert last["title"] == "Recording Started"
    assert last["body"] == "Capturing: Game Window"


def test_screen_fallback_notification(session, backend, scheduler, notifier) -> None:
    backend.sources = [CaptureSource("screen:0", "Entire Screen", "screen")]
    session.on_process_started()
    scheduler.advance(5)

    assert notifier.recent()[-1]["body"] == "Capturing: Screen"


def test_second_start_is_ignored(session, scheduler) -> None:
    session.on_process_started()
    first_id = session.session.session_id

    scheduler.advance(1)
    session.on_process_started()
    assert session.session.session_id == first_id

    scheduler.advance(5)
    session.on_process_started()
    assert session.session.session_id == first_id
    assert session.state == SessionState.CAPTURING


def test_capture_failure_returns_to_idle(session, backend, scheduler, notifier) -> None:
    backend.start_error = CaptureError("display unavailable")
    session.on_process_started()
    scheduler.advance(5)

    assert session.state == SessionState.IDLE
    assert notifier.recent()[-1]["title"] == "Error"


def test_no_sources_returns_to_idle(session, backend, scheduler) -> None:
    backend.sources = []
    session.on_process_started()
    scheduler.advance(5)

    assert session.state == SessionState.IDLE
    assert backend.started == []


def test_end_while_capturing_finalizes(session, backend, scheduler, launched, clock, config) -> None:
    session.on_process_started()
    scheduler.advance(5)
    scheduler.advance(1200)
    session.on_process_ended()

    assert session.state == SessionState.IDLE
    assert backend.stop_calls == 1
    assert len(launched) == 1

    recording = launched[0]
    assert isinstance(recording, CompletedRecording)
    assert recording.recorded_duration_seconds == pytest.approx(1200)
    assert recording.video == backend.video
    assert recording.recording_path.exists()
    assert recording.recording_path.name == f"{recording.session_id}.webm"


def test_end_before_grace_abandons_session(session, backend, scheduler, launched) -> None:
    session.on_process_started()
    scheduler.advance(2)
    session.on_process_ended()

    assert session.state == SessionState.IDLE
    scheduler.advance(10)
    assert backend.started == []
    assert launched == []


def test_stop_failure_does_not_launch(session, backend, scheduler, launched, notifier) -> None:
    backend.stop_error = CaptureError("stream broke")
    session.on_process_started()
    scheduler.advance(5)
    session.on_process_ended()

    assert session.state == SessionState.IDLE
    assert launched == []
    assert notifier.recent()[-1]["title"] == "Error"


def test_manual_stop(session, scheduler, launched) -> None:
    assert session.stop() is False

    session.on_process_started()
    scheduler.advance(5)
    assert session.stop() is True

    assert session.state == SessionState.IDLE
    assert len(launched) == 1

    # The game is still running, so no new session until it restarts
    session.on_process_ended()
    assert len(launched) == 1


def test_new_game_after_finalize(session, scheduler, launched) -> None:
    session.on_process_started()
    scheduler.advance(5)
    session.on_process_ended()

    scheduler.advance(60)
    session.on_process_started()
    assert session.state == SessionState.DETECTED
    assert session.session.session_id != launched[0].session_id


# =============================================================================
# Consent
# =============================================================================

def test_manual_mode_asks_for_consent(manual_session, backend, scheduler, consent) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)

    assert manual_session.state == SessionState.AWAITING_CONSENT
    consent.request.assert_called_once_with(manual_session.session.session_id)
    assert backend.started == []


def test_accept_starts_capture(manual_session, backend, scheduler, consent) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)

    assert manual_session.accept() is True
    assert manual_session.state == SessionState.CAPTURING
    consent.dismiss.assert_called()

    # The consent timeout no longer applies
    scheduler.advance(30)
    assert manual_session.state == SessionState.CAPTURING


def test_decline_returns_to_idle(manual_session, backend, scheduler) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)

    assert manual_session.decline() is True
    assert manual_session.state == SessionState.IDLE
    assert backend.started == []


def test_accept_and_decline_need_pending_request(manual_session, scheduler) -> None:
    assert manual_session.accept() is False
    assert manual_session.decline() is False

    manual_session.on_process_started()
    assert manual_session.accept() is False


def test_consent_times_out(manual_session, backend, scheduler, consent) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)

    scheduler.advance(14.9)
    assert manual_session.state == SessionState.AWAITING_CONSENT

    scheduler.advance(0.1)
    assert manual_session.state == SessionState.IDLE
    consent.dismiss.assert_called_once()
    assert backend.started == []


def test_end_during_consent_abandons(manual_session, backend, scheduler, consent, launched) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)
    manual_session.on_process_ended()

    assert manual_session.state == SessionState.IDLE
    consent.dismiss.assert_called_once()

    # A late accept or timeout has nothing to act on
    assert manual_session.accept() is False
    scheduler.advance(30)
    assert backend.started == []
    assert launched == []


def test_stale_timeout_ignores_new_session(manual_session, scheduler, consent) -> None:
    manual_session.on_process_started()
    scheduler.advance(5)
    manual_session.decline()

    # A new game starts; the old session's timers must not touch it
    scheduler.advance(1)
    manual_session.on_process_started()
    scheduler.advance(5)
    assert manual_session.state == SessionState.AWAITING_CONSENT

    scheduler.advance(14)
    assert manual_session.state == SessionState.AWAITING_CONSENT


# =============================================================================
# Context
# =============================================================================

def test_context_snapshot(session, context, scheduler) -> None:
    snapshot = context.snapshot()
    assert snapshot["state"] == "idle"
    assert snapshot["session"] is None

    session.on_process_started()
    scheduler.advance(5)

    snapshot = context.snapshot()
    assert snapshot["state"] == "capturing"
    assert snapshot["is_recording"] is True
    assert snapshot["game_detected"] is True
    assert snapshot["session"]["source"] == "League of Legends"


def test_pipeline_counter_never_negative(context) -> None:
    context.pipeline_finished()
    assert context.pipelines_running == 0

    context.pipeline_started()
    context.pipeline_started()
    context.pipeline_finished()
    assert context.pipelines_running == 1
