"""
Game process detection.

Polls the OS process list on a fixed interval and reports edge-triggered
start/end events for the target process.
"""

import logging
import platform
import subprocess
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import psutil

from matchcam.errors import DetectionError
from matchcam.timers import Scheduler, TimerHandle

logger = logging.getLogger(__name__)


class ProcessLister(ABC):
    """Capability that returns the names of running processes."""

    @abstractmethod
    def list_process_names(self) -> List[str]:
        """
        List running process names.

        Raises:
            DetectionError: if the process list cannot be read
        """


class PsutilProcessLister(ProcessLister):
    """Cross-platform lister based on psutil."""

    def list_process_names(self) -> List[str]:
        names = []
        try:
            for proc in psutil.process_iter(["name"]):
                name = proc.info.get("name")
                if name:
                    names.append(name)
        except psutil.Error as e:
            raise DetectionError(f"psutil process query failed: {e}") from e
        return names


class TasklistProcessLister(ProcessLister):
    """Windows lister using `tasklist`, filtered to one image name."""

    def __init__(self, image_name: str, timeout: float = 3.0):
        self.image_name = image_name
        self.timeout = timeout

    def list_process_names(self) -> List[str]:
        try:
            result = subprocess.run(
                ["tasklist", "/FI", f"IMAGENAME eq {self.image_name}", "/NH", "/FO", "CSV"],
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DetectionError(f"tasklist failed: {e}") from e

        if result.returncode != 0:
            raise DetectionError(f"tasklist exited with {result.returncode}")

        names = []
        for line in result.stdout.splitlines():
            line = line.strip()
            # "INFO: No tasks are running..." has no CSV quoting
            if line.startswith('"'):
                names.append(line.split('","', 1)[0].strip('"'))
        return names


def create_process_lister(kind: str, process_name: str) -> ProcessLister:
    """
    Create a process lister.

    Args:
        kind: "psutil", "tasklist" or "auto"
        process_name: Target executable name (used by tasklist filtering)
    """
    if kind == "tasklist" or (kind == "auto" and platform.system() == "Windows"):
        return TasklistProcessLister(process_name)
    return PsutilProcessLister()


class ProcessWatcher:
    """
    Edge-triggered watcher for a single process name.

    poll() reports presence; tick() compares it against the previous
    sample and fires on_started on a rising edge and on_ended on a
    falling edge. There is no debounce: one missed sample flips state.
    """

    def __init__(
        self,
        lister: ProcessLister,
        process_name: str,
        on_started: Callable[[], None],
        on_ended: Callable[[], None],
        scheduler: Scheduler,
        interval_ms: int = 3000,
    ):
        self.lister = lister
        self.process_name = process_name
        self._needle = self._display_name(process_name)
        self.on_started = on_started
        self.on_ended = on_ended
        self.scheduler = scheduler
        self.interval_ms = interval_ms

        self.was_running = False
        self._timer: Optional[TimerHandle] = None
        self._lock = threading.Lock()

    @staticmethod
    def _display_name(process_name: str) -> str:
        name = process_name.lower()
        if name.endswith(".exe"):
            name = name[:-4]
        return name

    def start(self) -> None:
        """Start polling on the scheduler."""
        if self._timer is not None:
            return
        self._timer = self.scheduler.call_every(self.interval_ms / 1000.0, self.tick)
        logger.info(f"Watching for process '{self.process_name}' every {self.interval_ms}ms")

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def running(self) -> bool:
        return self._timer is not None

    def poll(self) -> bool:
        """Return True if the target process is present. Query failures count as absent."""
        try:
            names = self.lister.list_process_names()
        except DetectionError as e:
            logger.debug(f"Process query failed, treating as not present: {e}")
            return False

        return any(self._needle in name.lower() for name in names)

    def tick(self) -> None:
        """Take one sample and emit an event on state change."""
        present = self.poll()

        with self._lock:
            started = present and not self.was_running
            ended = not present and self.was_running
            self.was_running = present

        if started:
            logger.info("Game process started")
            self.on_started()
        elif ended:
            logger.info("Game process ended")
            self.on_ended()
