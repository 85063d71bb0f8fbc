"""
Capture module for MatchCam.

Supports pluggable capture backends:
- FFmpegCaptureBackend: gdigrab/x11grab screen and window capture
- SimulationCaptureBackend: placeholder stream for development

Usage:
    from matchcam.capture import create_capture_backend
    backend = create_capture_backend("auto", config)
"""

from matchcam.capture.base import (
    CaptureBackend,
    CaptureSource,
    register_capture,
    get_available_backends,
    create_capture_backend,
    select_capture_source,
)

# Implementations auto-register on import
from matchcam.capture.ffmpeg import FFmpegCaptureBackend
from matchcam.capture.simulation import SimulationCaptureBackend

__all__ = [
    "CaptureBackend",
    "CaptureSource",
    "register_capture",
    "get_available_backends",
    "create_capture_backend",
    "select_capture_source",
    "FFmpegCaptureBackend",
    "SimulationCaptureBackend",
]
