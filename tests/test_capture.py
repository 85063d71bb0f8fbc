"""Tests for capture source selection and the backend registry."""

from unittest.mock import patch

import pytest

from matchcam.capture import (
    CaptureSource,
    FFmpegCaptureBackend,
    SimulationCaptureBackend,
    create_capture_backend,
    get_available_backends,
    select_capture_source,
)
from matchcam.capture.simulation import WEBM_MAGIC
from matchcam.errors import CaptureError

LAUNCHER = CaptureSource("w:1", "Riot Client", "window")
CLIENT = CaptureSource("w:2", "League of Legends Client", "window")
GAME = CaptureSource("w:3", "League of Legends (TM)", "window")
SCREEN = CaptureSource("s:0", "Entire Screen", "screen")
OTHER = CaptureSource("w:4", "Notepad", "window")


def test_game_window_preferred() -> None:
    chosen = select_capture_source([LAUNCHER, CLIENT, SCREEN, GAME], "league of legends")
    assert chosen == GAME


def test_launcher_windows_excluded() -> None:
    chosen = select_capture_source([CLIENT, OTHER, SCREEN], "league of legends")
    assert chosen == SCREEN


def test_first_source_when_no_screen() -> None:
    assert select_capture_source([OTHER, CLIENT], "league of legends") == OTHER


def test_custom_exclusions() -> None:
    chosen = select_capture_source([CLIENT, SCREEN], "league of legends", excluded_keywords=())
    assert chosen == CLIENT


def test_no_sources_raises() -> None:
    with pytest.raises(CaptureError):
        select_capture_source([], "league of legends")


def test_registry_contains_backends() -> None:
    assert {"ffmpeg", "simulation"} <= set(get_available_backends())


def test_create_named_backend(config) -> None:
    assert isinstance(create_capture_backend("simulation", config), SimulationCaptureBackend)


def test_unknown_backend_raises(config) -> None:
    with pytest.raises(CaptureError):
        create_capture_backend("nope", config)


def test_auto_falls_back_to_simulation(config) -> None:
    with patch.object(FFmpegCaptureBackend, "is_supported", return_value=False):
        backend = create_capture_backend("auto", config)
    assert isinstance(backend, SimulationCaptureBackend)


def test_simulation_lifecycle(config) -> None:
    backend = SimulationCaptureBackend(config)
    source = backend.list_sources()[0]
    assert source.is_screen

    with pytest.raises(CaptureError):
        backend.stop()

    backend.start(source, config.recording.quality_preset())
    assert backend.is_capturing
    assert backend.get_status()["source"] == "Simulated Screen"

    with pytest.raises(CaptureError):
        backend.start(source, {})

    data = backend.stop()
    assert data.startswith(WEBM_MAGIC)
    assert not backend.is_capturing


def test_cleanup_stops_capture(config) -> None:
    backend = SimulationCaptureBackend(config)
    backend.start(backend.list_sources()[0], {})
    backend.cleanup()
    assert not backend.is_capturing
