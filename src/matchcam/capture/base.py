"""
Abstract base class for capture backends.

A backend enumerates capturable windows/screens and turns one of them
into a raw video byte stream between start() and stop().
Implement this interface to support other capture primitives.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Sequence
import logging

from matchcam.errors import CaptureError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureSource:
    """A capturable window or screen."""
    id: str
    name: str
    kind: str = "window"  # window, screen

    @property
    def is_screen(self) -> bool:
        return self.kind == "screen"


class CaptureBackend(ABC):
    """
    Abstract base class for capture backends.

    Example usage:
        @register_capture("mybackend")
        class MyBackend(CaptureBackend):
            def list_sources(self):
                ...
    """

    def __init__(self, config):
        """
        Initialize the backend.

        Args:
            config: Configuration object with recording settings
        """
        self.config = config
        self.active_source: Optional[CaptureSource] = None

    @classmethod
    def is_supported(cls, config) -> bool:
        """Whether this backend can run on the current machine."""
        return True

    @abstractmethod
    def list_sources(self) -> List[CaptureSource]:
        """
        Enumerate capturable windows and screens.

        Raises:
            CaptureError: if enumeration fails
        """

    @abstractmethod
    def start(self, source: CaptureSource, quality: Dict[str, int]) -> None:
        """
        Begin capturing a source.

        Args:
            source: Source chosen by select_capture_source()
            quality: Preset with width, height, frame_rate and bitrate

        Raises:
            CaptureError: if the stream cannot be started
        """

    @abstractmethod
    def stop(self) -> bytes:
        """
        Stop capturing and return the complete video byte stream.

        Raises:
            CaptureError: if the stream failed
        """

    @property
    def is_capturing(self) -> bool:
        return self.active_source is not None

    def get_status(self) -> Dict[str, Any]:
        return {
            "backend": type(self).__name__,
            "capturing": self.is_capturing,
            "source": self.active_source.name if self.active_source else None,
        }

    def cleanup(self) -> None:
        """Release backend resources."""
        if self.is_capturing:
            try:
                self.stop()
            except CaptureError as e:
                logger.error(f"Error stopping capture during cleanup: {e}")


def select_capture_source(
    sources: Sequence[CaptureSource],
    game_keyword: str,
    excluded_keywords: Sequence[str] = ("client", "riot"),
) -> CaptureSource:
    """
    Pick the source to record.

    Prefers a window whose title contains the game keyword but none of
    the excluded keywords (the launcher), then the first screen, then
    anything at all.

    Raises:
        CaptureError: if there are no sources
    """
    if not sources:
        raise CaptureError("No capture sources available")

    keyword = game_keyword.lower()
    excluded = [k.lower() for k in excluded_keywords]

    for source in sources:
        name = source.name.lower()
        if keyword in name and not any(k in name for k in excluded):
            return source

    for source in sources:
        if source.is_screen:
            return source

    return sources[0]


# =============================================================================
# Backend Registry
# =============================================================================

_capture_registry: Dict[str, type] = {}


def register_capture(backend_type: str):
    """
    Decorator to register a capture backend.

    Usage:
        @register_capture("ffmpeg")
        class FFmpegCaptureBackend(CaptureBackend):
            ...
    """
    def decorator(cls):
        _capture_registry[backend_type] = cls
        logger.debug(f"Registered capture backend: {backend_type}")
        return cls
    return decorator


def get_available_backends() -> list:
    """Get list of registered backend types."""
    return list(_capture_registry.keys())


def create_capture_backend(backend_type: str, config) -> CaptureBackend:
    """
    Create a capture backend of the given type.

    "auto" picks the first backend that reports itself usable, falling
    back to simulation.

    Raises:
        CaptureError: if the type is unknown
    """
    if backend_type == "auto":
        for candidate in ("ffmpeg", "simulation"):
            cls = _capture_registry.get(candidate)
            if cls is not None and cls.is_supported(config):
                logger.info(f"Auto-selected capture backend: {candidate}")
                return cls(config)
        raise CaptureError("No usable capture backend")

    if backend_type not in _capture_registry:
        raise CaptureError(
            f"Unknown capture backend: {backend_type}. "
            f"Available: {get_available_backends()}"
        )

    return _capture_registry[backend_type](config)
