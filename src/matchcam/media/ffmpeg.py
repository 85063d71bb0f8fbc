"""
Thin synchronous wrapper around the ffmpeg and ffprobe binaries.

Every call blocks until the subprocess exits and either returns a result
or raises ProbeError / TranscodeError.
"""

import json
import logging
import subprocess
from pathlib import Path
from typing import List

from matchcam.errors import ProbeError, TranscodeError

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_SEC = 30
CLIP_TIMEOUT_SEC = 300
FRAME_TIMEOUT_SEC = 60

# Clips feed automated analysis, not playback: favour speed over quality
CLIP_ENCODE_OPTIONS = [
    "-c:v", "libvpx",      # VP8 encodes faster than VP9
    "-crf", "35",
    "-b:v", "500K",
    "-deadline", "realtime",
    "-cpu-used", "5",
    "-an",
]


class FFmpegRunner:
    """Runs probe, clip and frame-grab commands."""

    def __init__(self, ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe"):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path

    @classmethod
    def from_config(cls, config) -> "FFmpegRunner":
        return cls(config.pipeline.ffmpeg_path, config.pipeline.ffprobe_path)

    def probe_duration(self, path: Path) -> float:
        """
        Get media duration in seconds.

        Raises:
            ProbeError: if ffprobe fails or reports no duration
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            str(path),
        ]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=PROBE_TIMEOUT_SEC)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise ProbeError(f"ffprobe failed for {path}: {e}") from e

        if result.returncode != 0:
            raise ProbeError(f"ffprobe exited with {result.returncode} for {path}")

        try:
            data = json.loads(result.stdout or "{}")
            duration = float(data["format"]["duration"])
        except (ValueError, KeyError, TypeError) as e:
            raise ProbeError(f"No duration reported for {path}") from e

        if duration <= 0:
            raise ProbeError(f"Non-positive duration for {path}: {duration}")
        return duration

    def extract_clip(self, source: Path, start: float, duration: float, output: Path) -> Path:
        """
        Transcode [start, start+duration] of source into output.

        Raises:
            TranscodeError: if ffmpeg fails or produces no file
        """
        cmd = [
            self.ffmpeg_path, "-y",
            "-ss", f"{start:.3f}",
            "-i", str(source),
            "-t", f"{duration:.3f}",
            *CLIP_ENCODE_OPTIONS,
            str(output),
        ]
        self._run(cmd, output, CLIP_TIMEOUT_SEC)
        return output

    def extract_frame(self, source: Path, timestamp: float, output: Path, size: str) -> Path:
        """
        Grab one JPEG frame at timestamp.

        Raises:
            TranscodeError: if ffmpeg fails or produces no file
        """
        cmd = [
            self.ffmpeg_path, "-y",
            "-ss", f"{timestamp:.3f}",
            "-i", str(source),
            "-frames:v", "1",
            "-s", size,
            str(output),
        ]
        self._run(cmd, output, FRAME_TIMEOUT_SEC)
        return output

    def _run(self, cmd: List[str], output: Path, timeout: int) -> None:
        logger.debug(f"Running: {' '.join(cmd[:8])}...")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except (OSError, subprocess.TimeoutExpired) as e:
            raise TranscodeError(f"ffmpeg failed: {e}") from e

        if result.returncode != 0:
            raise TranscodeError(f"ffmpeg failed: {(result.stderr or '')[-500:]}")

        if not output.exists():
            raise TranscodeError(f"Output file not created: {output}")
