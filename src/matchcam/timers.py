"""
Timer scheduling for MatchCam.

The watcher poll, the load-grace delay, the consent timeout and the
deferred temp cleanup all go through a Scheduler so that tests can drive
them with a virtual clock instead of sleeping.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TimerHandle:
    """Handle returned by a scheduler; cancel() stops a pending or repeating timer."""

    def __init__(self, on_cancel: Optional[Callable[[], None]] = None):
        self._cancelled = threading.Event()
        self._on_cancel = on_cancel

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        if self._on_cancel:
            self._on_cancel()


class Scheduler(ABC):
    """Interface for one-shot and repeating timers."""

    @abstractmethod
    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once after delay_sec."""

    @abstractmethod
    def call_every(self, interval_sec: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback every interval_sec until the handle is cancelled."""

    def shutdown(self) -> None:
        """Cancel everything still pending."""


def _run_safely(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception as e:
        logger.exception(f"Timer callback failed: {e}")


class ThreadingScheduler(Scheduler):
    """Scheduler backed by daemon threads."""

    def __init__(self):
        self._handles: List[TimerHandle] = []
        self._lock = threading.Lock()

    def _track(self, handle: TimerHandle) -> TimerHandle:
        with self._lock:
            self._handles = [h for h in self._handles if not h.cancelled]
            self._handles.append(handle)
        return handle

    def _forget(self, handle: TimerHandle) -> None:
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)

    @property
    def pending(self) -> int:
        """Number of timers that have neither fired nor been cancelled."""
        with self._lock:
            return sum(1 for h in self._handles if not h.cancelled)

    def call_later(self, delay_sec: float, callback: Callable[[], None]) -> TimerHandle:
        def fire():
            self._forget(handle)
            _run_safely(callback)

        timer = threading.Timer(delay_sec, fire)
        timer.daemon = True
        handle = TimerHandle(on_cancel=timer.cancel)
        self._track(handle)
        timer.start()
        return handle

    def call_every(self, interval_sec: float, callback: Callable[[], None]) -> TimerHandle:
        stop_event = threading.Event()
        handle = TimerHandle(on_cancel=stop_event.set)

        def loop():
            while not stop_event.wait(interval_sec):
                _run_safely(callback)

        thread = threading.Thread(target=loop, daemon=True)
        thread.start()
        return self._track(handle)

    def shutdown(self) -> None:
        with self._lock:
            handles, self._handles = self._handles, []
        for handle in handles:
            handle.cancel()
