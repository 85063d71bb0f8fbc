"""
Still frame sampling for visual analysis.
"""

import base64
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from matchcam.errors import TranscodeError
from matchcam.media.ffmpeg import FFmpegRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameSample:
    """One JPEG frame of a clip, base64 encoded."""
    timestamp_seconds: float
    base64_data: str

    def to_payload(self) -> dict:
        return {"timestamp": self.timestamp_seconds, "data": self.base64_data}


class FrameExtractor:
    """Samples evenly spaced frames from a clip, skipping the very start and end."""

    def __init__(self, runner: FFmpegRunner, frame_size: str = "1280x720"):
        self.runner = runner
        self.frame_size = frame_size

    def sample(self, clip_path: Path, output_dir: Path, frame_count: int = 5) -> List[FrameSample]:
        """
        Sample frame_count frames at duration / (frame_count + 1) spacing.

        A frame that fails to extract is skipped, so fewer frames than
        requested may be returned.

        Raises:
            ProbeError: if the clip duration cannot be determined
        """
        duration = self.runner.probe_duration(clip_path)
        interval = duration / (frame_count + 1)

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        frames: List[FrameSample] = []
        for i in range(1, frame_count + 1):
            timestamp = interval * i
            frame_path = output_dir / f"frame_{i}.jpg"

            try:
                self.runner.extract_frame(clip_path, timestamp, frame_path, self.frame_size)
                data = frame_path.read_bytes()
            except (TranscodeError, OSError) as e:
                logger.warning(f"Failed to extract frame {i} of {clip_path.name}: {e}")
                continue

            frames.append(FrameSample(
                timestamp_seconds=timestamp,
                base64_data=base64.b64encode(data).decode("utf-8"),
            ))

        return frames
