"""
Upload coordinator for sending a finished session to the analysis service.

Handles:
- Creating the remote recording container
- Uploading the full video
- Uploading per-clip frame sets through a bounded worker pool
- Creating and starting the analysis
- Re-analysis of recordings that were already uploaded
"""

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from matchcam.errors import NetworkError, ProbeError, UploadError
from matchcam.matchdata import MatchRecord
from matchcam.media.clips import ExtractedClip
from matchcam.media.frames import FrameExtractor
from matchcam.timers import Scheduler
from matchcam.upload.client import AnalysisApiClient

logger = logging.getLogger(__name__)

LOCAL_USER = "local-user"


@dataclass
class UploadWorkspace:
    """Scratch directory for one in-flight upload."""
    root: Path

    @property
    def video_path(self) -> Path:
        return self.root / "full_recording.webm"

    @property
    def clips_dir(self) -> Path:
        return self.root / "clips"

    @property
    def frames_dir(self) -> Path:
        return self.root / "frames"

    @classmethod
    def create(cls, temp_root: Path, name: str, video: bytes) -> "UploadWorkspace":
        """Create the workspace and write the raw video into it."""
        workspace = cls(Path(temp_root) / name)
        workspace.root.mkdir(parents=True, exist_ok=True)
        workspace.video_path.write_bytes(video)
        logger.debug(f"Video saved to temp file: {workspace.video_path}")
        return workspace

    def remove(self) -> None:
        shutil.rmtree(self.root, ignore_errors=True)
        logger.info(f"Cleaned up temp files: {self.root}")


@dataclass
class UploadResult:
    """Outcome of a completed upload."""
    recording_id: str
    match_id: str
    clip_count: int
    analysis_id: Optional[str] = None
    analysis_started: bool = False


class UploadCoordinator:
    """
    Drives the ordered upload sequence.

    Only container creation and the full video upload are fatal; every
    later step degrades gracefully.
    """

    def __init__(
        self,
        config,
        client: AnalysisApiClient,
        frame_extractor: FrameExtractor,
        scheduler: Scheduler,
    ):
        self.config = config
        self.client = client
        self.frames = frame_extractor
        self.scheduler = scheduler
        self.frame_count = config.pipeline.upload_frame_count
        self.max_workers = max(1, config.pipeline.upload_workers)
        self.cleanup_delay = config.pipeline.temp_cleanup_delay_sec

    def _account(self):
        account = self.config.account
        return account.puuid or LOCAL_USER, account.region or "EUW1"

    def upload(
        self,
        session_id: str,
        video: bytes,
        match: Optional[MatchRecord],
        clips: Sequence[ExtractedClip],
        workspace: Optional[UploadWorkspace] = None,
        timeline_events: Optional[List[Dict[str, Any]]] = None,
    ) -> UploadResult:
        """
        Upload a session.

        Args:
            session_id: Local session id, used when there is no match
            video: Raw recording bytes
            match: Reconciled match, if any
            clips: Extracted clips, in priority order
            workspace: Scratch directory to tear down afterwards
            timeline_events: Raw timeline events for the analysis record

        Returns:
            UploadResult

        Raises:
            UploadError: if the container or the full video cannot be uploaded
        """
        puuid, region = self._account()
        match_id = match.match_id if match else session_id

        try:
            logger.info(f"Processing video for analysis: {match_id}")

            # 1. Recording container
            try:
                recording_id = self.client.create_recording(
                    match_id, puuid, region, len(video), len(clips)
                )
            except NetworkError as e:
                raise UploadError(f"Recording creation failed: {e}") from e
            logger.info(f"Recording created: {recording_id}")

            # 2. Full video (dashboard playback)
            try:
                self.client.upload_video(recording_id, video)
            except NetworkError as e:
                raise UploadError(f"Full video upload failed: {e}") from e
            logger.info("Full video uploaded successfully")

            # 3. Clips with frames
            frames_root = workspace.frames_dir if workspace else None
            uploaded = self._upload_clips(recording_id, clips, frames_root)

            result = UploadResult(
                recording_id=recording_id,
                match_id=match_id,
                clip_count=uploaded,
            )

            # 4-5. Analysis
            self._create_and_start_analysis(result, match, puuid, region, timeline_events)
            return result

        finally:
            # 6. Deferred so in-flight reads of clip files can finish
            if workspace is not None:
                self.schedule_cleanup(workspace)

    def _upload_clips(
        self,
        recording_id: str,
        clips: Sequence[ExtractedClip],
        frames_root: Optional[Path],
    ) -> int:
        if not clips:
            return 0

        logger.info(f"Uploading {len(clips)} clips with frames ({self.max_workers} workers)...")

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [
                executor.submit(self._upload_clip, recording_id, clip, position, len(clips), frames_root)
                for position, clip in enumerate(clips)
            ]
            results = []
            for position, future in enumerate(futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.exception(f"Clip {position} upload worker error: {e}")
                    results.append(False)

        uploaded = sum(1 for ok in results if ok)
        logger.info(f"Uploaded {uploaded}/{len(clips)} clips")
        return uploaded

    def _upload_clip(
        self,
        recording_id: str,
        clip: ExtractedClip,
        position: int,
        total: int,
        frames_root: Optional[Path],
    ) -> bool:
        frames_dir = (frames_root or clip.local_path.parent / "frames") / f"clip_{position}"

        try:
            frames = self.frames.sample(clip.local_path, frames_dir, self.frame_count)
            clip_id = self.client.upload_clip(recording_id, {
                "index": position,
                "type": clip.type,
                "description": clip.description,
                "startTime": clip.start_time,
                "endTime": clip.end_time,
                "severity": clip.severity,
                "frames": [frame.to_payload() for frame in frames],
            })
        except (ProbeError, NetworkError, OSError) as e:
            logger.error(f"Failed to upload clip {position}: {e}")
            return False

        logger.info(f"Clip {position + 1}/{total} uploaded with {len(frames)} frames ({clip_id})")
        return True

    def _create_and_start_analysis(
        self,
        result: UploadResult,
        match: Optional[MatchRecord],
        puuid: str,
        region: str,
        timeline_events: Optional[List[Dict[str, Any]]],
    ) -> None:
        try:
            result.analysis_id = self.client.create_analysis(
                result.match_id,
                puuid,
                region,
                match.to_payload() if match else {},
                clip_count=result.clip_count,
                timeline_events=timeline_events,
            )
        except NetworkError as e:
            logger.error(f"Analysis creation failed: {e}")
            return

        logger.info(f"Analysis created with ID: {result.analysis_id}, starting processing...")

        try:
            self.client.start_analysis(result.analysis_id)
        except NetworkError as e:
            # The analysis record stays remotely and can be retried by hand
            logger.error(f"Analysis start failed: {e}")
            return

        result.analysis_started = True
        logger.info("Analysis started successfully")

    def schedule_cleanup(self, workspace: UploadWorkspace) -> None:
        self.scheduler.call_later(self.cleanup_delay, workspace.remove)

    def reanalyze(
        self,
        local_match_id: str,
        match: Optional[MatchRecord],
        full_upload: Callable[[], Any],
    ) -> str:
        """
        Re-run analysis for a recording that may already exist remotely.

        Args:
            local_match_id: Id derived from the local recording file name
            match: Reconciled match, if any
            full_upload: Runs the complete upload when the recording is unknown remotely

        Returns:
            "reanalyzed", "created" or "uploaded"

        Raises:
            NetworkError: if the remote calls fail
        """
        puuid, region = self._account()
        match_id = match.match_id if match else local_match_id

        try:
            exists = self.client.recording_exists(match_id)
        except NetworkError as e:
            logger.warning(f"Recording check failed, treating {match_id} as unknown: {e}")
            exists = False

        if not exists:
            logger.info(f"Recording {match_id} unknown remotely, uploading")
            full_upload()
            return "uploaded"

        analysis_id = self.client.find_analysis(match_id)
        if analysis_id:
            logger.info(f"Found existing analysis {analysis_id}, triggering re-analysis...")
            self.client.reanalyze(analysis_id)
            return "reanalyzed"

        logger.info("No existing analysis, creating new...")
        self.client.create_analysis(
            match_id, puuid, region, match.to_payload() if match else {}
        )
        return "created"


__all__ = [
    "AnalysisApiClient",
    "UploadCoordinator",
    "UploadResult",
    "UploadWorkspace",
]
