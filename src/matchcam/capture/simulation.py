"""
Simulation capture backend for testing.

Provides a virtual screen that works without any capture primitive.
Useful for exercising the full pipeline on dev machines.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, List

from matchcam.capture.base import (
    CaptureBackend,
    CaptureSource,
    register_capture,
)
from matchcam.errors import CaptureError

logger = logging.getLogger(__name__)

# EBML header so the placeholder still identifies as Matroska/WebM
WEBM_MAGIC = b"\x1a\x45\xdf\xa3"


@register_capture("simulation")
class SimulationCaptureBackend(CaptureBackend):
    """
    Virtual capture for testing without a display.

    Produces a small placeholder byte stream instead of real video.
    """

    def __init__(self, config):
        super().__init__(config)
        self._started_at: Optional[datetime] = None
        self._quality: Dict[str, int] = {}
        logger.info("Simulation capture initialized")

    def list_sources(self) -> List[CaptureSource]:
        return [CaptureSource(id="screen:0", name="Simulated Screen", kind="screen")]

    def start(self, source: CaptureSource, quality: Dict[str, int]) -> None:
        if self.is_capturing:
            raise CaptureError("Already capturing")

        self.active_source = source
        self._quality = dict(quality)
        self._started_at = datetime.now()
        logger.info(f"[SIMULATION] Capture started: {source.name}")

    def stop(self) -> bytes:
        if not self.is_capturing:
            raise CaptureError("Not capturing")

        duration = (datetime.now() - self._started_at).total_seconds()
        source = self.active_source
        self.active_source = None
        self._started_at = None

        logger.info(f"[SIMULATION] Capture stopped: {source.name} ({duration:.1f}s)")
        body = f"SIMULATION {source.id} {duration:.1f}s {self._quality}".encode("utf-8")
        return WEBM_MAGIC + body
