"""
Storage manager for local recordings.

Handles:
- Persisting finished recordings
- Listing recordings newest first
- Remake detection and deletion
- Capping how many recordings are kept locally
"""

import logging
import shutil
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional

from matchcam.errors import PersistenceError
from matchcam.matchdata import MatchRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetentionEntry:
    """A persisted local recording."""
    path: Path
    modified_time: float
    size_bytes: int

    @property
    def match_id(self) -> str:
        return self.path.stem


class RecordingStore:
    """
    Directory of persisted recordings, one `<session id><ext>` file each.
    """

    def __init__(self, config):
        """
        Initialize the store.

        Args:
            config: Configuration object with storage settings
        """
        self.config = config
        self.recordings_path = Path(config.storage.recordings_path)
        self.extension = config.storage.extension
        self._lock = threading.Lock()

        self.recordings_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"Storage initialized: {self.recordings_path}")

    def path_for(self, session_id: str) -> Path:
        return self.recordings_path / f"{session_id}{self.extension}"

    def save_recording(self, session_id: str, data: bytes) -> Path:
        """
        Write a finished recording.

        Raises:
            PersistenceError: if the file cannot be written
        """
        path = self.path_for(session_id)
        try:
            with self._lock:
                self.recordings_path.mkdir(parents=True, exist_ok=True)
                path.write_bytes(data)
        except OSError as e:
            raise PersistenceError(f"Could not save recording {path}: {e}") from e

        logger.info(f"Video saved: {path} ({len(data) / (1024 * 1024):.1f} MB)")
        return path

    def entries(self) -> List[RetentionEntry]:
        """All recordings, most recently modified first."""
        entries = []
        try:
            candidates = list(self.recordings_path.glob(f"*{self.extension}"))
        except OSError as e:
            logger.error(f"Error reading recordings: {e}")
            return []

        for path in candidates:
            try:
                stat = path.stat()
            except OSError:
                # Deleted between glob and stat
                continue
            entries.append(RetentionEntry(path, stat.st_mtime, stat.st_size))

        entries.sort(key=lambda e: e.modified_time, reverse=True)
        return entries

    def latest(self) -> Optional[RetentionEntry]:
        entries = self.entries()
        return entries[0] if entries else None

    def list_recordings(self) -> List[Dict[str, Any]]:
        """Recording info for display, newest first."""
        return [
            {
                "id": entry.match_id,
                "filename": entry.path.name,
                "path": str(entry.path),
                "size_bytes": entry.size_bytes,
                "size_mb": round(entry.size_bytes / (1024 * 1024), 1),
                "modified": datetime.fromtimestamp(entry.modified_time).isoformat(),
            }
            for entry in self.entries()
        ]

    def delete(self, path: Path) -> bool:
        """Delete one recording. Failures are logged, never raised."""
        try:
            with self._lock:
                Path(path).unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete {path}: {e}")
            return False

        logger.info(f"Deleted recording: {Path(path).name}")
        return True

    def clear_all(self) -> int:
        """Delete every local recording; returns how many were removed."""
        deleted = sum(1 for entry in self.entries() if self.delete(entry.path))
        logger.info(f"Cleared {deleted} recordings")
        return deleted

    def get_status(self) -> Dict[str, Any]:
        """Get storage status and metrics."""
        try:
            disk_usage = shutil.disk_usage(self.recordings_path)
        except OSError as e:
            logger.error(f"Error getting storage status: {e}")
            return {"error": str(e), "path": str(self.recordings_path)}

        entries = self.entries()
        return {
            "path": str(self.recordings_path),
            "free_gb": round(disk_usage.free / (1024 ** 3), 2),
            "recording_count": len(entries),
            "recording_size_mb": round(sum(e.size_bytes for e in entries) / (1024 * 1024), 1),
            "max_local_recordings": self.config.storage.max_local_recordings,
        }


class RetentionManager:
    """
    Decides whether a session is worth uploading and caps local storage.
    """

    def __init__(self, config, store: RecordingStore):
        self.config = config
        self.store = store

    # Live views of config; the control API may change them at runtime
    @property
    def min_game_duration(self) -> int:
        return self.config.storage.min_game_duration_sec

    @property
    def max_local_recordings(self) -> int:
        return self.config.storage.max_local_recordings

    @staticmethod
    def game_duration(match: Optional[MatchRecord], recorded_duration: float) -> float:
        """Remote match duration when known, else the measured capture duration."""
        if match is not None and match.duration:
            return float(match.duration)
        return float(recorded_duration)

    def is_remake(self, game_duration: float) -> bool:
        return game_duration < self.min_game_duration

    def discard_if_remake(
        self,
        recording_path: Path,
        match: Optional[MatchRecord],
        recorded_duration: float,
    ) -> bool:
        """
        Delete the recording if the game was a remake.

        Returns:
            True if the session is a remake and must not be uploaded
        """
        duration = self.game_duration(match, recorded_duration)
        if not self.is_remake(duration):
            return False

        logger.info(
            f"Game too short ({duration:.0f}s < {self.min_game_duration}s) - "
            f"skipping upload (probable remake)"
        )
        self.store.delete(recording_path)
        return True

    def enforce(self) -> List[Path]:
        """Delete every recording beyond the newest max_local_recordings."""
        entries = self.store.entries()
        excess = entries[self.max_local_recordings:]

        deleted = [entry.path for entry in excess if self.store.delete(entry.path)]
        if deleted:
            logger.info(f"Retention removed {len(deleted)} old recording(s)")
        return deleted
