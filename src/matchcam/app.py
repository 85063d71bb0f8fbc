"""
Main MatchCam application.

Orchestrates all components:
- Game process watcher
- Recording session state machine
- Capture backend
- Post-processing pipeline (match data, clips, upload)
- Local storage and retention
- Notifications
- Local control API
"""

import signal
import logging
import sys
import threading
from logging.handlers import RotatingFileHandler
from typing import Optional

import requests

from matchcam.config import Config, default_data_dir
from matchcam.api import APIServer
from matchcam.capture import CaptureBackend, create_capture_backend
from matchcam.detection import ProcessWatcher, create_process_lister
from matchcam.errors import CaptureError
from matchcam.feedback import Notifier
from matchcam.matchdata import MatchDataFetcher
from matchcam.media import ClipPipeline, FFmpegRunner, FrameExtractor
from matchcam.pipeline import PostProcessingPipeline
from matchcam.session import RecordingSession, SessionContext
from matchcam.storage import RecordingStore, RetentionManager
from matchcam.timers import ThreadingScheduler
from matchcam.upload import UploadCoordinator
from matchcam.upload.client import AnalysisApiClient

logger = logging.getLogger(__name__)


class MatchCamApp:
    """
    Main application class.

    Manages lifecycle of all components and provides
    unified access to services.
    """

    def __init__(self, config_path: Optional[str] = None, dev: bool = False):
        """
        Initialize MatchCam application.

        Args:
            config_path: Optional path to configuration file
            dev: Run in development mode regardless of the config file
        """
        # Load configuration
        self.config_path = config_path
        self.config = Config.load(config_path)
        if dev:
            self.config.production_mode = False

        # Configure logging
        self._setup_logging()

        logger.info(f"MatchCam starting - Account: {self.config.account.display_name or 'not linked'}")

        # Initialize components
        self.context = SessionContext()
        self.scheduler = ThreadingScheduler()
        self.http: Optional[requests.Session] = None
        self.notifier: Optional[Notifier] = None
        self.store: Optional[RecordingStore] = None
        self.retention: Optional[RetentionManager] = None
        self.backend: Optional[CaptureBackend] = None
        self.api_client: Optional[AnalysisApiClient] = None
        self.pipeline: Optional[PostProcessingPipeline] = None
        self.session: Optional[RecordingSession] = None
        self.watcher: Optional[ProcessWatcher] = None
        self.api_server: Optional[APIServer] = None

        self._running = False
        self._stop_event = threading.Event()

        # Setup signal handlers
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _setup_logging(self) -> None:
        """Configure logging based on mode."""
        if self.config.production_mode:
            # Production: minimal logging
            logging.basicConfig(
                level=logging.INFO,
                format="%(levelname)s - %(message)s",
                handlers=[logging.StreamHandler(sys.stdout)]
            )
        else:
            # Development: full logging, also to a rotating file
            log_dir = default_data_dir() / "logs"
            log_dir.mkdir(parents=True, exist_ok=True)

            logging.basicConfig(
                level=logging.DEBUG,
                format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                handlers=[
                    logging.StreamHandler(sys.stdout),
                    RotatingFileHandler(
                        log_dir / "matchcam.log",
                        maxBytes=5 * 1024 * 1024,
                        backupCount=3,
                    ),
                ]
            )

    def _signal_handler(self, signum, frame) -> None:
        """Handle shutdown signals."""
        logger.info(f"Received signal {signum}, shutting down...")
        self._stop_event.set()

    def initialize(self, start_api: bool = True) -> bool:
        """
        Initialize all components.

        Args:
            start_api: Create the local control API server

        Returns:
            True if initialization successful
        """
        try:
            logger.info("Initializing components...")

            # Notifications first so later failures can be reported
            self.notifier = Notifier(self.config)

            # Storage
            self.store = RecordingStore(self.config)
            self.retention = RetentionManager(self.config, self.store)
            self.retention.enforce()
            logger.info("Storage initialized")

            # Capture
            self.backend = create_capture_backend(self.config.recording.backend, self.config)
            logger.info(f"Capture backend initialized: {type(self.backend).__name__}")

            # Remote services share one connection pool
            self.http = requests.Session()
            fetcher = MatchDataFetcher(self.config, session=self.http)
            self.api_client = AnalysisApiClient(self.config, session=self.http)

            # Media
            runner = FFmpegRunner.from_config(self.config)
            clip_pipeline = ClipPipeline.from_config(self.config, runner)
            frames = FrameExtractor(runner, self.config.pipeline.frame_size)

            coordinator = UploadCoordinator(self.config, self.api_client, frames, self.scheduler)
            self.pipeline = PostProcessingPipeline(
                self.config,
                fetcher,
                self.retention,
                self.store,
                clip_pipeline,
                coordinator,
                notifier=self.notifier,
                context=self.context,
            )
            logger.info("Post-processing pipeline initialized")

            # Session state machine
            self.session = RecordingSession(
                self.config,
                self.context,
                self.backend,
                self.store,
                self.scheduler,
                launch_pipeline=self.pipeline.launch,
                notifier=self.notifier,
            )

            # Process watcher
            lister = create_process_lister(
                self.config.detection.lister, self.config.detection.process_name
            )
            self.watcher = ProcessWatcher(
                lister,
                self.config.detection.process_name,
                on_started=self.session.on_process_started,
                on_ended=self.session.on_process_ended,
                scheduler=self.scheduler,
                interval_ms=self.config.detection.check_interval_ms,
            )
            logger.info(f"Process watcher initialized ({type(lister).__name__})")

            # Control API
            if start_api and self.config.api.enabled:
                self.api_server = APIServer(
                    self,
                    host=self.config.api.host,
                    port=self.config.api.port,
                )
                logger.info("API server initialized")

            logger.info("All components initialized successfully")
            return True

        except (CaptureError, OSError) as e:
            logger.error(f"Initialization failed: {e}")
            if self.notifier:
                self.notifier.notify("Error", f"MatchCam could not start: {e}", cue="error")
            return False

    def run(self, start_api: bool = True) -> None:
        """
        Start the application.

        Blocks until shutdown is requested.
        """
        if not self.initialize(start_api=start_api):
            logger.error("Failed to initialize, exiting")
            sys.exit(1)

        self._running = True

        if self.api_server:
            self.api_server.start()

        self.watcher.start()
        logger.info("MatchCam running - waiting for a game")

        try:
            while not self._stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        if not self._running:
            return

        self._running = False
        logger.info("Shutting down MatchCam...")

        # Stop detection first so no new session starts
        if self.watcher:
            self.watcher.stop()

        # Finish an active recording so it is saved and uploaded
        if self.session and self.context.is_recording:
            logger.info("Stopping active recording...")
            self.session.stop()

        if self.pipeline:
            self.pipeline.join(timeout=60)

        if self.api_server:
            self.api_server.stop()

        self.scheduler.shutdown()

        if self.backend:
            self.backend.cleanup()

        if self.http:
            self.http.close()

        logger.info("Shutdown complete")


def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="MatchCam game recorder")
    parser.add_argument(
        "-c", "--config",
        help="Path to configuration file",
        default=None
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode"
    )
    parser.add_argument(
        "--no-api",
        action="store_true",
        help="Do not start the local control API"
    )

    args = parser.parse_args()

    app = MatchCamApp(config_path=args.config, dev=args.dev)
    app.run(start_api=not args.no_api)


if __name__ == "__main__":
    main()
