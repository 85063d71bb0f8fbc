"""
Recording session state machine.

States:
    IDLE -> DETECTED -> (AWAITING_CONSENT | CAPTURING) -> FINALIZING -> IDLE

Only one session exists at a time. Every transition happens while
holding the SessionContext lock, because watcher ticks, timer callbacks,
control API calls and pipeline completion arrive on different threads.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from matchcam.capture.base import CaptureBackend, select_capture_source
from matchcam.errors import CaptureError, PersistenceError
from matchcam.feedback import Notifier
from matchcam.matchdata import LOCAL_MATCH_PREFIX
from matchcam.storage.manager import RecordingStore
from matchcam.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    DETECTED = "detected"
    AWAITING_CONSENT = "awaiting_consent"
    CAPTURING = "capturing"
    FINALIZING = "finalizing"


@dataclass
class GameSession:
    """One detected game instance."""
    session_id: str
    start_time_ms: int
    state: SessionState = SessionState.DETECTED
    recorded_duration_seconds: float = 0.0
    capture_started_at: Optional[float] = None
    source_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "start_time_ms": self.start_time_ms,
            "state": self.state.value,
            "recorded_duration_seconds": self.recorded_duration_seconds,
            "source": self.source_name,
        }


@dataclass(frozen=True)
class CompletedRecording:
    """A finalized session handed to the post-processing pipeline."""
    session_id: str
    start_time_ms: int
    recording_path: Path
    recorded_duration_seconds: float
    video: bytes = field(repr=False)


@dataclass
class SessionContext:
    """
    Process-wide session state shared by the watcher, the state machine,
    the pipeline and the control API.
    """
    lock: threading.RLock = field(default_factory=threading.RLock)
    session: Optional[GameSession] = None
    game_running: bool = False
    pipelines_running: int = 0

    @property
    def state(self) -> SessionState:
        return self.session.state if self.session else SessionState.IDLE

    @property
    def is_recording(self) -> bool:
        return self.state == SessionState.CAPTURING

    def pipeline_started(self) -> None:
        with self.lock:
            self.pipelines_running += 1

    def pipeline_finished(self) -> None:
        with self.lock:
            self.pipelines_running = max(0, self.pipelines_running - 1)

    def snapshot(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "state": self.state.value,
                "is_recording": self.is_recording,
                "game_detected": self.game_running,
                "session": self.session.to_dict() if self.session else None,
                "pipelines_running": self.pipelines_running,
            }


class ConsentPrompt:
    """
    Asks the user whether to record a detected game.

    The answer comes back through RecordingSession.accept()/decline().
    """

    def __init__(self, notifier: Optional[Notifier] = None):
        self.notifier = notifier

    def request(self, session_id: str) -> None:
        if self.notifier:
            self.notifier.notify("Game Detected", "Record this game?")

    def dismiss(self) -> None:
        """Withdraw a pending request."""


class RecordingSession:
    """
    Owns the single in-flight recording.

    Reacts to process start/end events, consent answers and manual stop,
    and hands finished recordings to the pipeline launcher without
    waiting for it.
    """

    def __init__(
        self,
        config,
        context: SessionContext,
        backend: CaptureBackend,
        store: RecordingStore,
        scheduler: Scheduler,
        launch_pipeline: Callable[[CompletedRecording], None],
        notifier: Optional[Notifier] = None,
        consent: Optional[ConsentPrompt] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the state machine.

        Args:
            config: Configuration with detection and recording settings
            context: Shared session context
            backend: Capture backend
            store: Where finished recordings are written
            scheduler: Timers for the grace delay and consent timeout
            launch_pipeline: Starts post-processing for a finished recording; must not block
            notifier: User notifications
            consent: Consent prompt used when auto-record is off
            clock: Wall clock in seconds
        """
        self.config = config
        self.context = context
        self.backend = backend
        self.store = store
        self.scheduler = scheduler
        self.launch_pipeline = launch_pipeline
        self.notifier = notifier
        self.consent = consent or ConsentPrompt(notifier)
        self.clock = clock

        self.load_grace_sec = config.detection.load_grace_ms / 1000.0
        self.consent_timeout_sec = config.detection.consent_timeout_ms / 1000.0
        self._timer: Optional[TimerHandle] = None

    @property
    def state(self) -> SessionState:
        return self.context.state

    @property
    def session(self) -> Optional[GameSession]:
        return self.context.session

    def _notify(self, title: str, body: str, cue: Optional[str] = None) -> None:
        if self.notifier:
            self.notifier.notify(title, body, cue)

    def _arm(self, delay_sec: float, callback: Callable[[], None]) -> None:
        self._cancel_timer()
        self._timer = self.scheduler.call_later(delay_sec, callback)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _is_current(self, session_id: str, state: SessionState) -> bool:
        session = self.context.session
        return session is not None and session.session_id == session_id and session.state == state

    def _reset(self, reason: str) -> None:
        self._cancel_timer()
        if self.context.session is not None:
            logger.info(f"Session {self.context.session.session_id} -> idle ({reason})")
        self.context.session = None

    # =========================================================================
    # Process events
    # =========================================================================

    def on_process_started(self) -> None:
        with self.context.lock:
            self.context.game_running = True

            if self.context.session is not None:
                logger.info(f"Game start ignored, session already {self.state.value}")
                return

            now_ms = int(self.clock() * 1000)
            session = GameSession(
                session_id=f"{LOCAL_MATCH_PREFIX}{now_ms}",
                start_time_ms=now_ms,
            )
            self.context.session = session
            logger.info(f"Game detected, session {session.session_id}")

            self._arm(self.load_grace_sec, lambda: self._on_grace_elapsed(session.session_id))

    def on_process_ended(self) -> None:
        with self.context.lock:
            self.context.game_running = False
            state = self.state

            if state == SessionState.CAPTURING:
                session = self._begin_finalize()
            else:
                if state in (SessionState.DETECTED, SessionState.AWAITING_CONSENT):
                    if state == SessionState.AWAITING_CONSENT:
                        self.consent.dismiss()
                    self._reset("game ended before capture")
                return

        self._finalize(session)

    # =========================================================================
    # Timers
    # =========================================================================

    def _on_grace_elapsed(self, session_id: str) -> None:
        with self.context.lock:
            if not self._is_current(session_id, SessionState.DETECTED):
                return

            if self.config.recording.auto_record:
                logger.info("Auto-recording enabled, starting recording...")
                self._begin_capture()
                return

            self.context.session.state = SessionState.AWAITING_CONSENT
            logger.info("Asking user whether to record...")
            self.consent.request(session_id)
            self._arm(self.consent_timeout_sec, lambda: self._on_consent_timeout(session_id))

    def _on_consent_timeout(self, session_id: str) -> None:
        with self.context.lock:
            if not self._is_current(session_id, SessionState.AWAITING_CONSENT):
                return
            self.consent.dismiss()
            self._reset("consent timed out")

    # =========================================================================
    # User actions
    # =========================================================================

    def accept(self) -> bool:
        """Consent to record the detected game."""
        with self.context.lock:
            if self.state != SessionState.AWAITING_CONSENT:
                return False
            self._cancel_timer()
            self.consent.dismiss()
            logger.info("Recording accepted")
            return self._begin_capture()

    def decline(self) -> bool:
        """Decline recording the detected game."""
        with self.context.lock:
            if self.state != SessionState.AWAITING_CONSENT:
                return False
            self.consent.dismiss()
            self._reset("recording declined")
            return True

    def stop(self) -> bool:
        """Manually stop the current capture."""
        with self.context.lock:
            if self.state != SessionState.CAPTURING:
                return False
            session = self._begin_finalize()

        self._finalize(session)
        return True

    # =========================================================================
    # Capture
    # =========================================================================

    def _begin_capture(self) -> bool:
        """Start capturing; caller holds the lock and the session is pre-capture."""
        session = self.context.session

        try:
            source = select_capture_source(
                self.backend.list_sources(),
                self.config.recording.game_window_keyword,
                self.config.recording.excluded_window_keywords,
            )
            self.backend.start(source, self.config.recording.quality_preset())
        except CaptureError as e:
            logger.error(f"Recording failed: {e}")
            self._notify("Error", "Recording could not be started", cue="error")
            self._reset("capture failed")
            return False

        session.state = SessionState.CAPTURING
        session.capture_started_at = self.clock()
        session.source_name = source.name

        source_type = "Screen" if source.is_screen else "Game Window"
        self._notify("Recording Started", f"Capturing: {source_type}", cue="start")
        logger.info(f"Recording started: {session.session_id} - Source: {source.name}")
        return True

    def _begin_finalize(self) -> GameSession:
        """Move CAPTURING -> FINALIZING; caller holds the lock."""
        session = self.context.session
        self._cancel_timer()
        session.state = SessionState.FINALIZING
        session.recorded_duration_seconds = max(0.0, self.clock() - session.capture_started_at)
        logger.info(
            f"Stopping recording {session.session_id} "
            f"({session.recorded_duration_seconds:.0f}s)"
        )
        return session

    def _finalize(self, session: GameSession) -> None:
        """Persist the stream and hand it to the pipeline. Runs without the lock."""
        try:
            video = self.backend.stop()
            path = self.store.save_recording(session.session_id, video)
        except (CaptureError, PersistenceError) as e:
            logger.error(f"Finalizing {session.session_id} failed: {e}")
            self._notify("Error", "Recording could not be saved", cue="error")
            with self.context.lock:
                self._reset("finalize failed")
            return

        self._notify("Recording Saved", "Analyzing...", cue="stop")

        recording = CompletedRecording(
            session_id=session.session_id,
            start_time_ms=session.start_time_ms,
            recording_path=path,
            recorded_duration_seconds=session.recorded_duration_seconds,
            video=video,
        )

        try:
            self.launch_pipeline(recording)
        finally:
            with self.context.lock:
                if self.context.session is session:
                    self._reset("handed to pipeline")


__all__ = [
    "SessionState",
    "GameSession",
    "CompletedRecording",
    "SessionContext",
    "ConsentPrompt",
    "RecordingSession",
]
