"""
Post-processing pipeline for finished recordings.

Runs once per recording, off the session thread:
1. Wait for the match to settle and reconcile it
2. Drop remakes
3. Extract timeline clips
4. Upload to the analysis service
5. Enforce local retention
"""

import logging
import threading
from typing import List, Optional

from matchcam.errors import MatchCamError, NetworkError, UploadError
from matchcam.feedback import Notifier
from matchcam.matchdata import LOCAL_MATCH_PREFIX, MatchDataFetcher, MatchRecord, TimelineData
from matchcam.media.clips import ClipPipeline, ExtractedClip
from matchcam.session import CompletedRecording, SessionContext
from matchcam.storage.manager import RecordingStore, RetentionManager
from matchcam.upload import UploadCoordinator, UploadResult, UploadWorkspace

logger = logging.getLogger(__name__)


def session_start_ms(local_match_id: str) -> int:
    """Detection time encoded in a `MATCH_<ms>` id, or 0 if it has none."""
    if local_match_id.startswith(LOCAL_MATCH_PREFIX):
        suffix = local_match_id[len(LOCAL_MATCH_PREFIX):]
        if suffix.isdigit():
            return int(suffix)
    return 0


class PostProcessingPipeline:
    """Reconcile, clip and upload finished recordings."""

    def __init__(
        self,
        config,
        fetcher: MatchDataFetcher,
        retention: RetentionManager,
        store: RecordingStore,
        clip_pipeline: ClipPipeline,
        coordinator: UploadCoordinator,
        notifier: Optional[Notifier] = None,
        context: Optional[SessionContext] = None,
    ):
        self.config = config
        self.fetcher = fetcher
        self.retention = retention
        self.store = store
        self.clips = clip_pipeline
        self.coordinator = coordinator
        self.notifier = notifier
        self.context = context

        self._threads: List[threading.Thread] = []

    def _notify(self, title: str, body: str, cue: Optional[str] = None) -> None:
        if self.notifier:
            self.notifier.notify(title, body, cue)

    def _account(self):
        account = self.config.account
        return account.puuid, account.region

    # =========================================================================
    # Entry points
    # =========================================================================

    def launch(self, recording: CompletedRecording) -> threading.Thread:
        """Process a recording on a background thread."""
        thread = threading.Thread(
            target=self.run,
            args=(recording,),
            name=f"pipeline-{recording.session_id}",
            daemon=True,
        )
        self._threads = [t for t in self._threads if t.is_alive()]
        self._threads.append(thread)
        thread.start()
        return thread

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for running pipelines, e.g. at shutdown."""
        for thread in list(self._threads):
            thread.join(timeout)

    def run(self, recording: CompletedRecording) -> Optional[UploadResult]:
        """
        Process one recording to completion.

        Args:
            recording: The finalized session

        Returns:
            UploadResult, or None if the recording was a remake or the upload failed
        """
        if self.context:
            self.context.pipeline_started()

        try:
            puuid, region = self._account()
            match = self.fetcher.fetch_after_settle(puuid, region, recording.start_time_ms)

            if self.retention.discard_if_remake(
                recording.recording_path, match, recording.recorded_duration_seconds
            ):
                self._notify("Game Skipped", "Game too short to analyze")
                return None

            return self._upload(
                recording.session_id,
                recording.video,
                match,
                recording.recorded_duration_seconds,
            )

        except MatchCamError as e:
            logger.error(f"Post-processing of {recording.session_id} failed: {e}")
            self._notify("Error", "Processing failed", cue="error")
            return None

        except Exception as e:
            logger.exception(f"Unexpected error processing {recording.session_id}: {e}")
            self._notify("Error", "Processing failed", cue="error")
            return None

        finally:
            self.retention.enforce()
            if self.context:
                self.context.pipeline_finished()

    def _upload(
        self,
        session_id: str,
        video: bytes,
        match: Optional[MatchRecord],
        recorded_duration: Optional[float],
    ) -> Optional[UploadResult]:
        """Build a workspace, extract clips and upload. UploadError is reported, not raised."""
        workspace_name = match.match_id if match else session_id
        try:
            workspace = UploadWorkspace.create(
                self.config.storage.temp_path, workspace_name, video
            )
        except OSError as e:
            logger.error(f"Could not prepare temp workspace: {e}")
            workspace = None

        timeline: Optional[TimelineData] = None
        clips: List[ExtractedClip] = []

        if match is not None and match.is_remote and workspace is not None:
            puuid, region = self._account()
            logger.info("Fetching timeline for important moments...")
            timeline = self.fetcher.fetch_timeline(match.match_id, puuid, region)

            if timeline and timeline.clips:
                logger.info(f"Extracting {len(timeline.clips)} clips...")
                clips = self.clips.extract(
                    workspace.video_path,
                    timeline.clips,
                    workspace.clips_dir,
                    recording_duration=recorded_duration,
                )

        try:
            result = self.coordinator.upload(
                session_id,
                video,
                match,
                clips,
                workspace=workspace,
                timeline_events=timeline.events if timeline else None,
            )
        except UploadError as e:
            logger.error(f"Upload failed: {e}")
            self._notify("Upload Failed", "Video saved locally", cue="error")
            return None

        self._notify(
            "Analysis Started",
            f"{result.clip_count} clips uploaded - results will appear on your dashboard",
            cue="success",
        )
        return result

    def reanalyze_latest(self) -> Optional[str]:
        """
        Re-run analysis for the most recent local recording.

        Returns:
            "reanalyzed", "created" or "uploaded", or None if there is
            nothing to reanalyze or the remote calls failed
        """
        entry = self.store.latest()
        if entry is None:
            logger.info("No recordings found")
            return None

        logger.info(f"Re-analyzing: {entry.path.name}")

        try:
            video = entry.path.read_bytes()
        except OSError as e:
            logger.error(f"Could not read {entry.path}: {e}")
            return None

        puuid, region = self._account()
        # The recording is already finished, so no settle wait
        match = self.fetcher.fetch(puuid, region, session_start_ms(entry.match_id))
        if match:
            logger.info(f"Match data for re-analysis: {match.champion}")

        def full_upload():
            result = self._upload(entry.match_id, video, match, None)
            if result is None:
                raise UploadError(f"Upload of {entry.match_id} failed")
            return result

        try:
            outcome = self.coordinator.reanalyze(entry.match_id, match, full_upload)
        except NetworkError as e:
            logger.error(f"Re-analysis failed: {e}")
            self._notify("Error", "Re-analysis failed", cue="error")
            return None

        self._notify("Re-analysis", f"Re-analysis {outcome} for {entry.match_id}", cue="success")
        return outcome


__all__ = ["PostProcessingPipeline"]
