"""
Screen/window capture through an ffmpeg grab device.

Uses gdigrab on Windows and x11grab on Linux. Window enumeration uses
pywinctl when it is installed; otherwise only the full screen is offered.
"""

import logging
import os
import platform
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Optional, Dict, List

from matchcam.capture.base import (
    CaptureBackend,
    CaptureSource,
    register_capture,
)
from matchcam.errors import CaptureError

logger = logging.getLogger(__name__)

try:
    import pywinctl
    PYWINCTL_AVAILABLE = True
except ImportError:
    PYWINCTL_AVAILABLE = False
    logger.debug("pywinctl not available - window capture limited to full screen")

STOP_TIMEOUT_SEC = 30


@register_capture("ffmpeg")
class FFmpegCaptureBackend(CaptureBackend):
    """Records the selected source to a temporary WebM file via ffmpeg."""

    def __init__(self, config):
        super().__init__(config)
        self.ffmpeg_path = config.pipeline.ffmpeg_path
        self._process: Optional[subprocess.Popen] = None
        self._output_path: Optional[Path] = None

    @classmethod
    def is_supported(cls, config) -> bool:
        if platform.system() not in ("Windows", "Linux"):
            return False
        if platform.system() == "Linux" and not os.environ.get("DISPLAY"):
            return False
        return shutil.which(config.pipeline.ffmpeg_path) is not None

    def list_sources(self) -> List[CaptureSource]:
        sources = [CaptureSource(id="screen:0", name="Entire Screen", kind="screen")]

        if PYWINCTL_AVAILABLE:
            try:
                for title in pywinctl.getAllTitles():
                    if title:
                        sources.append(CaptureSource(id=f"window:{title}", name=title))
            except Exception as e:
                logger.warning(f"Window enumeration failed: {e}")

        return sources

    def _input_args(self, source: CaptureSource, frame_rate: int) -> List[str]:
        if platform.system() == "Windows":
            target = "desktop" if source.is_screen else f"title={source.name}"
            return ["-f", "gdigrab", "-framerate", str(frame_rate), "-i", target]

        display = os.environ.get("DISPLAY", ":0")
        return ["-f", "x11grab", "-framerate", str(frame_rate), "-i", display]

    def start(self, source: CaptureSource, quality: Dict[str, int]) -> None:
        if self.is_capturing:
            raise CaptureError("Already capturing")

        fd, name = tempfile.mkstemp(prefix="matchcam-capture-", suffix=".webm")
        os.close(fd)
        self._output_path = Path(name)

        cmd = [
            self.ffmpeg_path, "-y", "-loglevel", "error",
            *self._input_args(source, quality["frame_rate"]),
            "-vf", f"scale={quality['width']}:{quality['height']}",
            "-c:v", "libvpx",
            "-b:v", str(quality["bitrate"]),
            "-deadline", "realtime",
            "-an",
            str(self._output_path),
        ]

        logger.debug(f"Starting capture: {' '.join(cmd)}")

        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            self._discard_output()
            raise CaptureError(f"Failed to launch ffmpeg: {e}") from e

        self.active_source = source
        logger.info(f"Capture started: {source.name}")

    def stop(self) -> bytes:
        if not self.is_capturing or self._process is None:
            raise CaptureError("Not capturing")

        process = self._process
        self._process = None
        self.active_source = None

        try:
            # ffmpeg finalizes the container when it reads 'q'
            _, stderr = process.communicate(input=b"q", timeout=STOP_TIMEOUT_SEC)
        except subprocess.TimeoutExpired:
            process.kill()
            _, stderr = process.communicate()

        try:
            if process.returncode not in (0, 255):
                message = (stderr or b"").decode("utf-8", "replace")[-500:]
                raise CaptureError(f"ffmpeg capture failed: {message}")

            try:
                return self._output_path.read_bytes()
            except OSError as e:
                raise CaptureError(f"Capture output unreadable: {e}") from e
        finally:
            self._discard_output()

    def _discard_output(self) -> None:
        if self._output_path is not None:
            try:
                self._output_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove capture temp file: {e}")
            self._output_path = None
