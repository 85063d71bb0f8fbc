"""
Error types raised across MatchCam.

Per-item failures (a clip, a frame, a clip upload) are caught where the
item is processed and downgraded to a dropped item. Single-shot critical
steps (recording container creation, full video upload) propagate.
"""


class MatchCamError(Exception):
    """Base class for all MatchCam errors."""


class DetectionError(MatchCamError):
    """The OS process list could not be queried."""


class CaptureError(MatchCamError):
    """No capture source could be selected, or the capture stream failed."""


class ProbeError(MatchCamError):
    """Media duration could not be determined."""


class TranscodeError(MatchCamError):
    """An ffmpeg transcode or frame grab failed."""


class NetworkError(MatchCamError):
    """A remote request failed or returned an unsuccessful envelope."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


class UploadError(NetworkError):
    """An irrecoverable upload step failed; the recording stays on disk."""


class PersistenceError(MatchCamError):
    """A local file could not be written or deleted."""
