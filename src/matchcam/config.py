"""
Configuration management for MatchCam.
"""

import os
import tempfile
import yaml
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
import logging

logger = logging.getLogger(__name__)

USER_CONFIG_PATH = Path.home() / ".config" / "matchcam" / "config.yaml"


def default_data_dir() -> Path:
    """Per-user data directory (APPDATA on Windows, XDG elsewhere)."""
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "matchcam"
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "matchcam"
    return Path.home() / ".local" / "share" / "matchcam"


# Capture quality presets (width, height, fps, bitrate in bits/s)
QUALITY_PRESETS: Dict[str, Dict[str, int]] = {
    "low": {"width": 854, "height": 480, "frame_rate": 15, "bitrate": 300_000},
    "medium": {"width": 854, "height": 480, "frame_rate": 20, "bitrate": 400_000},
    "high": {"width": 1280, "height": 720, "frame_rate": 30, "bitrate": 1_500_000},
}


def _coerce_field(field_type, value):
    """
    Check a value against a config field type, converting numeric strings.

    Raises:
        ValueError: if the value does not fit the field
    """
    if field_type == Optional[str]:
        if value is None or isinstance(value, str):
            return value
    elif field_type is bool:
        if isinstance(value, bool):
            return value
    elif field_type in (int, float):
        if isinstance(value, bool):
            raise ValueError(f"expected {field_type.__name__}, got {value!r}")
        if isinstance(value, (int, float, str)):
            try:
                number = float(value)
            except ValueError:
                raise ValueError(f"expected {field_type.__name__}, got {value!r}")
            if field_type is int:
                if not number.is_integer():
                    raise ValueError(f"expected int, got {value!r}")
                return int(number)
            return number
    elif field_type is str:
        if isinstance(value, str):
            return value
    elif field_type == List[str]:
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
    else:
        return value

    raise ValueError(f"unexpected value {value!r}")


@dataclass
class DetectionConfig:
    """Game process detection settings."""
    process_name: str = "League of Legends.exe"
    check_interval_ms: int = 3000
    load_grace_ms: int = 5000
    consent_timeout_ms: int = 15000
    lister: str = "auto"  # auto, psutil, tasklist


@dataclass
class RecordingConfig:
    """Capture settings."""
    auto_record: bool = True
    quality: str = "medium"  # low, medium, high
    backend: str = "auto"  # auto, ffmpeg, simulation
    game_window_keyword: str = "league of legends"
    excluded_window_keywords: List[str] = field(
        default_factory=lambda: ["client", "riot"]
    )

    def quality_preset(self) -> Dict[str, int]:
        """Resolve the configured quality to a preset, falling back to medium."""
        return QUALITY_PRESETS.get(self.quality, QUALITY_PRESETS["medium"])


@dataclass
class AccountConfig:
    """Linked player account."""
    puuid: Optional[str] = None
    game_name: Optional[str] = None
    tag_line: Optional[str] = None
    region: str = "EUW1"

    @property
    def is_linked(self) -> bool:
        return bool(self.puuid)

    @property
    def display_name(self) -> Optional[str]:
        if not self.game_name:
            return None
        return f"{self.game_name}#{self.tag_line}"


@dataclass
class StorageConfig:
    """Local storage settings."""
    recordings_path: str = str(default_data_dir() / "recordings")
    temp_path: str = str(Path(tempfile.gettempdir()) / "matchcam-clips")
    max_local_recordings: int = 3
    min_game_duration_sec: int = 900  # shorter games are remakes
    extension: str = ".webm"


@dataclass
class PipelineConfig:
    """Post-processing pipeline settings."""
    match_settle_sec: float = 30.0
    match_tolerance_ms: int = 300_000
    clip_batch_size: int = 4
    default_clip_duration_sec: float = 20.0
    upload_frame_count: int = 3
    upload_workers: int = 3
    temp_cleanup_delay_sec: float = 60.0
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    frame_size: str = "1280x720"


@dataclass
class ApiConfig:
    """Remote services and local control API."""
    analysis_url: str = "https://api.matchcam.example"
    stats_url: str = "https://matchcam.example/api/riot"
    request_timeout_sec: int = 15
    upload_timeout_sec: int = 600
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 45679


@dataclass
class FeedbackConfig:
    """User notification settings."""
    enabled: bool = True
    audio_enabled: bool = False
    volume: int = 80  # 0-100


_SECTIONS = {
    "detection": DetectionConfig,
    "recording": RecordingConfig,
    "account": AccountConfig,
    "storage": StorageConfig,
    "pipeline": PipelineConfig,
    "api": ApiConfig,
    "feedback": FeedbackConfig,
}


@dataclass
class Config:
    """Main configuration class."""
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    recording: RecordingConfig = field(default_factory=RecordingConfig)
    account: AccountConfig = field(default_factory=AccountConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    api: ApiConfig = field(default_factory=ApiConfig)
    feedback: FeedbackConfig = field(default_factory=FeedbackConfig)
    production_mode: bool = True

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load configuration from file."""
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        paths_to_try.extend([
            USER_CONFIG_PATH,
            Path("config/config.yaml"),
        ])

        for path in paths_to_try:
            if path.exists():
                logger.info(f"Loading config from {path}")
                return cls._load_from_file(path)

        logger.warning("No config file found, using defaults")
        return cls()

    @classmethod
    def _load_from_file(cls, path: Path) -> "Config":
        """Load configuration from a YAML file."""
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            logger.warning(f"Config file {path} is not a mapping, using defaults")
            data = {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Build a configuration from a plain dictionary."""
        config = cls()

        for name, section_cls in _SECTIONS.items():
            if isinstance(data.get(name), dict):
                setattr(config, name, cls._load_dataclass(section_cls, data[name]))

        if "production_mode" in data:
            config.production_mode = bool(data["production_mode"])

        return config

    @staticmethod
    def _load_dataclass(cls, data: Dict[str, Any]):
        """Load a dataclass from a dictionary. Invalid values keep their defaults."""
        fields = cls.__dataclass_fields__
        filtered_data = {}
        for k, v in data.items():
            if k not in fields:
                continue
            try:
                filtered_data[k] = _coerce_field(fields[k].type, v)
            except ValueError as e:
                logger.warning(f"Ignoring config value {cls.__name__}.{k}: {e}")
        return cls(**filtered_data)

    def save(self, path: Optional[str] = None) -> None:
        """Save configuration to file."""
        save_path = Path(path) if path else USER_CONFIG_PATH
        save_path.parent.mkdir(parents=True, exist_ok=True)

        with open(save_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)

        logger.info(f"Configuration saved to {save_path}")

    @staticmethod
    def _dataclass_to_dict(obj) -> Dict[str, Any]:
        """Convert a dataclass to a dictionary."""
        return {k: v for k, v in obj.__dict__.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert entire config to dictionary."""
        data: Dict[str, Any] = {
            name: self._dataclass_to_dict(getattr(self, name))
            for name in _SECTIONS
        }
        data["production_mode"] = self.production_mode
        return data

    def update_from_dict(self, data: Dict[str, Any]) -> None:
        """
        Update configuration from a dictionary.

        Every value is checked before any is applied.

        Raises:
            ValueError: if a section is not a mapping or a value has the wrong type
        """
        changes = []
        for name in _SECTIONS:
            values = data.get(name)
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ValueError(f"Section '{name}' must be an object")

            section = getattr(self, name)
            fields = section.__dataclass_fields__
            for k, v in values.items():
                if k not in fields:
                    continue
                try:
                    changes.append((section, k, _coerce_field(fields[k].type, v)))
                except ValueError as e:
                    raise ValueError(f"{name}.{k}: {e}") from e

        production_mode = data.get("production_mode")
        if production_mode is not None and not isinstance(production_mode, bool):
            raise ValueError("production_mode must be a boolean")

        for section, k, v in changes:
            setattr(section, k, v)

        if production_mode is not None:
            self.production_mode = production_mode
