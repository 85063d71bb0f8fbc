"""Tests for game process detection."""

import subprocess
from unittest.mock import MagicMock, patch

import psutil
import pytest

from matchcam.detection import (
    ProcessWatcher,
    PsutilProcessLister,
    TasklistProcessLister,
    create_process_lister,
)
from matchcam.errors import DetectionError


@pytest.fixture
def events():
    return []


@pytest.fixture
def watcher(lister, scheduler, events) -> ProcessWatcher:
    return ProcessWatcher(
        lister,
        "League of Legends.exe",
        on_started=lambda: events.append("started"),
        on_ended=lambda: events.append("ended"),
        scheduler=scheduler,
        interval_ms=3000,
    )


def test_poll_matches_case_insensitive_without_exe(watcher, lister) -> None:
    lister.names = ["explorer.exe", "LEAGUE OF LEGENDS"]
    assert watcher.poll() is True

    lister.names = ["League of Legends.exe"]
    assert watcher.poll() is True

    lister.names = ["LeagueClient.exe", "RiotClientServices.exe"]
    assert watcher.poll() is False


def test_poll_failure_counts_as_absent(watcher, lister) -> None:
    lister.names = ["League of Legends.exe"]
    lister.fail = True
    assert watcher.poll() is False


def test_events_fire_only_on_edges(watcher, lister, scheduler, events) -> None:
    watcher.start()

    scheduler.advance(3)
    assert events == []

    lister.names = ["League of Legends.exe"]
    scheduler.advance(3)
    scheduler.advance(3)
    scheduler.advance(3)
    assert events == ["started"]

    lister.names = []
    scheduler.advance(3)
    scheduler.advance(3)
    assert events == ["started", "ended"]


def test_first_sample_waits_one_interval(watcher, lister, scheduler, events) -> None:
    lister.names = ["League of Legends.exe"]
    watcher.start()

    scheduler.advance(2.9)
    assert events == []

    scheduler.advance(0.1)
    assert events == ["started"]


def test_query_failure_while_running_reports_end(watcher, lister, scheduler, events) -> None:
    lister.names = ["League of Legends.exe"]
    watcher.start()
    scheduler.advance(3)

    lister.fail = True
    scheduler.advance(3)
    assert events == ["started", "ended"]

    # Recovery is a fresh start
    lister.fail = False
    scheduler.advance(3)
    assert events == ["started", "ended", "started"]


def test_stop_cancels_polling(watcher, lister, scheduler, events) -> None:
    watcher.start()
    assert watcher.running
    watcher.stop()
    assert not watcher.running

    lister.names = ["League of Legends.exe"]
    scheduler.advance(30)
    assert events == []


def test_start_twice_schedules_once(watcher, scheduler) -> None:
    watcher.start()
    watcher.start()
    assert scheduler.pending == 1


def test_psutil_lister_collects_names() -> None:
    procs = [MagicMock(info={"name": "a.exe"}), MagicMock(info={"name": None})]
    with patch("matchcam.detection.process.psutil.process_iter", return_value=procs):
        assert PsutilProcessLister().list_process_names() == ["a.exe"]


def test_psutil_lister_wraps_errors() -> None:
    with patch(
        "matchcam.detection.process.psutil.process_iter",
        side_effect=psutil.AccessDenied(),
    ):
        with pytest.raises(DetectionError):
            PsutilProcessLister().list_process_names()


def test_tasklist_lister_parses_csv() -> None:
    output = '"League of Legends.exe","1234","Console","1","2,000,000 K"\n'
    completed = subprocess.CompletedProcess([], 0, stdout=output, stderr="")
    with patch("matchcam.detection.process.subprocess.run", return_value=completed):
        names = TasklistProcessLister("League of Legends.exe").list_process_names()
    assert names == ["League of Legends.exe"]


def test_tasklist_lister_no_tasks() -> None:
    output = "INFO: No tasks are running which match the specified criteria.\n"
    completed = subprocess.CompletedProcess([], 0, stdout=output, stderr="")
    with patch("matchcam.detection.process.subprocess.run", return_value=completed):
        assert TasklistProcessLister("League of Legends.exe").list_process_names() == []


def test_tasklist_lister_timeout_raises() -> None:
    with patch(
        "matchcam.detection.process.subprocess.run",
        side_effect=subprocess.TimeoutExpired("tasklist", 3),
    ):
        with pytest.raises(DetectionError):
            TasklistProcessLister("League of Legends.exe").list_process_names()


def test_create_process_lister_selection() -> None:
    assert isinstance(create_process_lister("psutil", "x.exe"), PsutilProcessLister)
    assert isinstance(create_process_lister("tasklist", "x.exe"), TasklistProcessLister)

    with patch("matchcam.detection.process.platform.system", return_value="Linux"):
        assert isinstance(create_process_lister("auto", "x.exe"), PsutilProcessLister)
    with patch("matchcam.detection.process.platform.system", return_value="Windows"):
        assert isinstance(create_process_lister("auto", "x.exe"), TasklistProcessLister)
