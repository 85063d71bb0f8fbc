"""
Event clip extraction.

Cuts short, low-fidelity clips around timeline events out of the full
recording. Clips are ordered so the ones most useful for analysis
(deaths, then kills, then objectives) are produced first, and are
transcoded in fixed-size batches with every clip in a batch running
concurrently.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from matchcam.errors import ProbeError, TranscodeError
from matchcam.matchdata import ClipSpec
from matchcam.media.ffmpeg import FFmpegRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExtractedClip:
    """A ClipSpec that has been cut to a local file."""
    spec: ClipSpec
    local_path: Path
    index: int
    start_time: float
    duration: float

    @property
    def type(self) -> str:
        return self.spec.type

    @property
    def severity(self) -> str:
        return self.spec.severity

    @property
    def description(self) -> str:
        return self.spec.description

    @property
    def end_time(self) -> float:
        end = self.start_time + self.duration
        if self.spec.end_time is not None:
            return min(float(self.spec.end_time), end)
        return end


def prioritize(clip_specs: Sequence[ClipSpec]) -> List[ClipSpec]:
    """Order clips by type rank, then severity rank. The sort is stable."""
    return sorted(clip_specs, key=lambda spec: spec.priority)


class ClipPipeline:
    """
    Extracts prioritized clips in sequential batches.

    Pipeline:
    1. Sort by (type rank, severity rank)
    2. Clamp each range to the recording duration
    3. Transcode batch by batch; a failed clip is dropped, never raised
    """

    def __init__(
        self,
        runner: FFmpegRunner,
        batch_size: int = 4,
        default_duration: float = 20.0,
    ):
        self.runner = runner
        self.batch_size = max(1, batch_size)
        self.default_duration = default_duration

    @classmethod
    def from_config(cls, config, runner: FFmpegRunner) -> "ClipPipeline":
        return cls(
            runner,
            batch_size=config.pipeline.clip_batch_size,
            default_duration=config.pipeline.default_clip_duration_sec,
        )

    def extract(
        self,
        full_video_path: Path,
        clip_specs: Sequence[ClipSpec],
        output_dir: Path,
        recording_duration: Optional[float] = None,
    ) -> List[ExtractedClip]:
        """
        Extract clips from a full recording.

        Args:
            full_video_path: The complete recording
            clip_specs: Timeline clips, any order
            output_dir: Directory for clip files (created if missing)
            recording_duration: Fallback length if probing the recording fails

        Returns:
            Successfully extracted clips, in priority order
        """
        if not clip_specs:
            logger.info("No clips to extract")
            return []

        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        total_duration = self._recording_length(full_video_path, recording_duration)
        ordered = prioritize(clip_specs)
        total = len(ordered)
        total_batches = (total + self.batch_size - 1) // self.batch_size
        extracted: List[ExtractedClip] = []

        logger.info(f"Processing all {total} clips (deaths prioritized)")

        for batch_start in range(0, total, self.batch_size):
            batch = ordered[batch_start:batch_start + self.batch_size]
            batch_num = batch_start // self.batch_size + 1
            logger.info(
                f"Extracting batch {batch_num}/{total_batches} "
                f"({len(batch)} clips in parallel)..."
            )

            with ThreadPoolExecutor(max_workers=len(batch)) as executor:
                futures = [
                    executor.submit(
                        self._extract_one,
                        full_video_path, spec, batch_start + offset,
                        output_dir, total_duration, total,
                    )
                    for offset, spec in enumerate(batch)
                ]
                results = [future.result() for future in futures]

            extracted.extend(clip for clip in results if clip is not None)

        logger.info(f"Successfully extracted {len(extracted)}/{total} clips")
        return extracted

    def _recording_length(self, path: Path, fallback: Optional[float]) -> Optional[float]:
        try:
            return self.runner.probe_duration(path)
        except ProbeError as e:
            logger.warning(f"Could not probe recording, using measured duration: {e}")
            return fallback

    def _clamp(self, spec: ClipSpec, total_duration: Optional[float]):
        start = max(0.0, float(spec.start_time))
        duration = float(spec.duration) if spec.duration else self.default_duration

        if total_duration is None:
            return start, duration
        if start >= total_duration:
            return None
        return start, min(duration, total_duration - start)

    def _extract_one(
        self,
        source: Path,
        spec: ClipSpec,
        index: int,
        output_dir: Path,
        total_duration: Optional[float],
        total: int,
    ) -> Optional[ExtractedClip]:
        clamped = self._clamp(spec, total_duration)
        if clamped is None:
            logger.warning(
                f"Clip {index} starts at {spec.start_time:.1f}s, past the end of the "
                f"recording ({total_duration:.1f}s); skipping"
            )
            return None

        start, duration = clamped
        clip_path = output_dir / f"clip_{index}_{spec.type}.webm"

        try:
            self.runner.extract_clip(source, start, duration, clip_path)
        except TranscodeError as e:
            logger.error(f"Failed to extract clip {index}: {e}")
            return None

        logger.info(f"Clip {index + 1}/{total} extracted: {spec.description}")
        return ExtractedClip(
            spec=spec,
            local_path=clip_path,
            index=index,
            start_time=start,
            duration=duration,
        )
