"""Shared fixtures: virtual-clock scheduler, fake OS and media collaborators."""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import pytest

from matchcam.capture.base import CaptureBackend, CaptureSource
from matchcam.config import Config
from matchcam.errors import CaptureError, DetectionError, ProbeError, TranscodeError
from matchcam.timers import Scheduler, TimerHandle


class FakeScheduler(Scheduler):
    """Scheduler driven by advance(); nothing runs until time moves."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._pending = []  # (due, seq, interval or None, callback, handle)

    def _add(self, due, interval, callback) -> TimerHandle:
        handle = TimerHandle()
        self._seq += 1
        self._pending.append((due, self._seq, interval, callback, handle))
        return handle

    def call_later(self, delay_sec, callback) -> TimerHandle:
        return self._add(self.now + delay_sec, None, callback)

    def call_every(self, interval_sec, callback) -> TimerHandle:
        return self._add(self.now + interval_sec, interval_sec, callback)

    def shutdown(self) -> None:
        for entry in self._pending:
            entry[4].cancel()
        self._pending = []

    @property
    def pending(self) -> int:
        return sum(1 for entry in self._pending if not entry[4].cancelled)

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            live = [e for e in self._pending if not e[4].cancelled and e[0] <= target]
            if not live:
                break
            entry = min(live, key=lambda e: (e[0], e[1]))
            self._pending.remove(entry)
            due, _, interval, callback, handle = entry
            self.now = due
            if interval is not None:
                self._seq += 1
                self._pending.append((due + interval, self._seq, interval, callback, handle))
            callback()
        self._pending = [e for e in self._pending if not e[4].cancelled]
        self.now = target


class FakeClock:
    """Wall clock that follows a FakeScheduler, offset to a realistic epoch."""

    def __init__(self, scheduler: FakeScheduler, epoch: float = 1_700_000_000.0):
        self.scheduler = scheduler
        self.epoch = epoch

    def __call__(self) -> float:
        return self.epoch + self.scheduler.now


class FakeProcessLister:
    def __init__(self):
        self.names: List[str] = []
        self.fail = False

    def list_process_names(self) -> List[str]:
        if self.fail:
            raise DetectionError("process list unavailable")
        return list(self.names)


class FakeCaptureBackend(CaptureBackend):
    """In-memory capture backend with failure injection."""

    def __init__(self, config=None, sources: Optional[List[CaptureSource]] = None):
        super().__init__(config)
        self.sources = sources if sources is not None else [
            CaptureSource("window:1", "League of Legends (TM) Client", "window"),
            CaptureSource("window:2", "League of Legends", "window"),
            CaptureSource("screen:0", "Entire Screen", "screen"),
        ]
        self.start_error: Optional[CaptureError] = None
        self.stop_error: Optional[CaptureError] = None
        self.video = b"\x1a\x45\xdf\xa3 recorded game"
        self.started: List[CaptureSource] = []
        self.qualities: List[Dict[str, int]] = []
        self.stop_calls = 0

    def list_sources(self) -> List[CaptureSource]:
        return list(self.sources)

    def start(self, source, quality) -> None:
        if self.start_error:
            raise self.start_error
        self.active_source = source
        self.started.append(source)
        self.qualities.append(quality)

    def stop(self) -> bytes:
        self.stop_calls += 1
        self.active_source = None
        if self.stop_error:
            raise self.stop_error
        return self.video


class FakeRunner:
    """
    Stand-in for FFmpegRunner that writes small placeholder files.

    Probe results come from `durations` (by file name) or `default_duration`.
    """

    def __init__(self):
        self.default_duration = 1800.0
        self.durations: Dict[str, float] = {}
        self.probe_failures: Set[str] = set()
        self.clip_failures: Set[float] = set()  # start times that fail
        self.frame_failures: Set[int] = set()  # 1-based frame numbers that fail
        self.on_clip: Optional[Callable[[float], None]] = None
        self.clip_calls: List[tuple] = []
        self.frame_calls: List[tuple] = []
        self._lock = threading.Lock()

    def probe_duration(self, path: Path) -> float:
        name = Path(path).name
        if name in self.probe_failures:
            raise ProbeError(f"cannot probe {name}")
        return self.durations.get(name, self.default_duration)

    def extract_clip(self, source, start, duration, output) -> Path:
        with self._lock:
            self.clip_calls.append((start, duration, Path(output).name))
        if self.on_clip:
            self.on_clip(start)
        if start in self.clip_failures:
            raise TranscodeError(f"clip at {start} failed")
        Path(output).write_bytes(b"clip")
        self.durations.setdefault(Path(output).name, duration)
        return output

    def extract_frame(self, source, timestamp, output, size) -> Path:
        with self._lock:
            self.frame_calls.append((Path(source).name, timestamp, size))
        number = int(Path(output).stem.split("_")[-1])
        if number in self.frame_failures:
            raise TranscodeError(f"frame {number} failed")
        Path(output).write_bytes(b"jpeg")
        return output


@pytest.fixture
def config(tmp_path) -> Config:
    config = Config()
    config.storage.recordings_path = str(tmp_path / "recordings")
    config.storage.temp_path = str(tmp_path / "temp")
    config.feedback.audio_enabled = False
    config.pipeline.match_settle_sec = 0
    config.api.analysis_url = "https://analysis.test/api"
    config.api.stats_url = "https://stats.test/api/riot"
    return config


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock(scheduler) -> FakeClock:
    return FakeClock(scheduler)


@pytest.fixture
def lister() -> FakeProcessLister:
    return FakeProcessLister()


@pytest.fixture
def backend(config) -> FakeCaptureBackend:
    return FakeCaptureBackend(config)


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
