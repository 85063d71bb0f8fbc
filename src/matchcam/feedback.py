"""
User feedback for MatchCam.

Short notifications for recording start/stop, upload outcome and errors,
with optional audio cues when simpleaudio and numpy are installed.
Displaying notifications on the desktop is left to whatever consumes
them (the control API exposes the recent ones).
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Try to import audio libraries
try:
    import simpleaudio as sa
    SIMPLEAUDIO_AVAILABLE = True
except ImportError:
    SIMPLEAUDIO_AVAILABLE = False

try:
    import numpy as np
    NUMPY_AVAILABLE = True
except ImportError:
    NUMPY_AVAILABLE = False

# (frequency Hz, duration ms) sequences per cue
CUES: Dict[str, List[Tuple[float, int]]] = {
    "start": [(600, 150), (900, 150)],
    "stop": [(900, 150), (600, 200)],
    "error": [(300, 200), (300, 200), (300, 200)],
    "success": [(800, 300)],
}


@dataclass
class Notification:
    title: str
    body: str
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, object]:
        return {"title": self.title, "body": self.body, "created_at": self.created_at}


class Notifier:
    """Collects notifications and plays the matching audio cue."""

    def __init__(self, config, history: int = 20):
        """
        Initialize the notifier.

        Args:
            config: Configuration with feedback settings
            history: How many recent notifications to keep
        """
        self.config = config
        self._enabled = config.feedback.enabled
        self._audio = (
            config.feedback.audio_enabled and SIMPLEAUDIO_AVAILABLE and NUMPY_AVAILABLE
        )
        self._volume = max(0, min(100, config.feedback.volume)) / 100.0
        self._sample_rate = 44100
        self._recent: Deque[Notification] = deque(maxlen=history)
        self._lock = threading.Lock()

        if config.feedback.audio_enabled and not self._audio:
            logger.info("simpleaudio/numpy not available - audio cues disabled")

    def notify(self, title: str, body: str, cue: Optional[str] = None) -> None:
        """Record a notification and play its cue."""
        if not self._enabled:
            return

        with self._lock:
            self._recent.append(Notification(title, body))
        logger.info(f"[{title}] {body}")

        if cue and self._audio:
            thread = threading.Thread(target=self._play_cue, args=(cue,), daemon=True)
            thread.start()

    def recent(self) -> List[Dict[str, object]]:
        with self._lock:
            return [n.to_dict() for n in self._recent]

    def _generate_tone(self, frequency: float, duration_ms: int) -> bytes:
        duration_sec = duration_ms / 1000.0
        t = np.linspace(0, duration_sec, int(self._sample_rate * duration_sec), False)
        tone = np.sin(frequency * t * 2 * np.pi)

        # 10ms fade in/out to avoid clicks
        envelope = int(self._sample_rate * 0.01)
        if len(tone) > envelope * 2:
            tone[:envelope] *= np.linspace(0, 1, envelope)
            tone[-envelope:] *= np.linspace(1, 0, envelope)

        return (tone * self._volume * 32767).astype(np.int16).tobytes()

    def _play_cue(self, cue: str) -> None:
        for frequency, duration_ms in CUES.get(cue, []):
            try:
                play_obj = sa.play_buffer(
                    self._generate_tone(frequency, duration_ms),
                    num_channels=1,
                    bytes_per_sample=2,
                    sample_rate=self._sample_rate,
                )
                play_obj.wait_done()
            except Exception as e:
                logger.error(f"Error playing audio: {e}")
                return
            time.sleep(0.1)
