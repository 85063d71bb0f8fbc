"""Game process detection."""

from matchcam.detection.process import (
    ProcessLister,
    PsutilProcessLister,
    TasklistProcessLister,
    ProcessWatcher,
    create_process_lister,
)

__all__ = [
    "ProcessLister",
    "PsutilProcessLister",
    "TasklistProcessLister",
    "ProcessWatcher",
    "create_process_lister",
]
