"""Local recording storage and retention."""

from matchcam.storage.manager import RecordingStore, RetentionEntry, RetentionManager

__all__ = ["RecordingStore", "RetentionEntry", "RetentionManager"]
