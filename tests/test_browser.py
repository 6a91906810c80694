"""Tests for the browser supervisor."""

import stat
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import httpx
import pytest

from browserlock.config import BrowserConfig, HeadlessMode
from browserlock.errors import LaunchFailed
from browserlock.services import (
    ProcessMonitor,
    ResourceSupervisor,
    find_browser_binary,
    health_check,
    resolve_headless,
)


class RecordingMonitor(ProcessMonitor):
    """Real termination, scripted port sweep, remembers who it signalled."""

    def __init__(self, port_pids: list[int] | None = None) -> None:
        self.port_pids = port_pids or []
        self.terminated: list[int] = []

    def find_by_port(self, port: int) -> list[int]:
        return list(self.port_pids)

    def terminate(self, pid, grace_seconds=1.0) -> bool:
        self.terminated.append(pid)
        return super().terminate(pid, grace_seconds)


@pytest.fixture
def fake_browser(tmp_path: Path) -> Path:
    """Executable that accepts any flags and never serves CDP."""
    script = tmp_path / "fake-chrome"
    script.write_text("#!/bin/sh\nexec sleep 30\n")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return script


def make_supervisor(
    tmp_path: Path, monitor: ProcessMonitor, binary: str | None = None
) -> ResourceSupervisor:
    return ResourceSupervisor(
        BrowserConfig(port=18899, binary=binary, profile_dir=tmp_path / "profile"),
        pid_file=tmp_path / "browser.pid",
        monitor=monitor,
        grace_seconds=0.5,
        probe_attempts=3,
        probe_interval=0.05,
    )


class TestResolveHeadless:
    """Tests for the headless decision."""

    def test_explicit_override_wins(self) -> None:
        assert resolve_headless(HeadlessMode.TRUE, {"DISPLAY": ":0"}, "linux") is True
        assert resolve_headless(HeadlessMode.FALSE, {}, "linux") is False

    def test_auto_without_display_is_headless(self) -> None:
        assert resolve_headless(HeadlessMode.AUTO, {}, "linux") is True

    def test_auto_with_x11_or_wayland(self) -> None:
        assert resolve_headless(HeadlessMode.AUTO, {"DISPLAY": ":0"}, "linux") is False
        wayland = {"WAYLAND_DISPLAY": "wayland-0"}
        assert resolve_headless(HeadlessMode.AUTO, wayland, "linux") is False

    def test_auto_on_macos_has_display(self) -> None:
        assert resolve_headless(HeadlessMode.AUTO, {}, "darwin") is False


class TestFindBrowserBinary:
    """Tests for browser binary discovery."""

    def test_configured_binary(self) -> None:
        assert find_browser_binary(sys.executable) == sys.executable

    def test_configured_binary_missing(self) -> None:
        with pytest.raises(LaunchFailed, match="not found"):
            find_browser_binary("/nonexistent/chrome")

    def test_nothing_installed(self) -> None:
        with (
            patch("browserlock.services.browser.os.access", return_value=False),
            patch("browserlock.services.browser.shutil.which", return_value=None),
            pytest.raises(LaunchFailed, match="Set CHROME_BIN"),
        ):
            find_browser_binary()

    def test_falls_back_to_path_candidates(self) -> None:
        def which(name: str) -> str | None:
            return "/usr/bin/chromium" if name == "chromium" else None

        with (
            patch("browserlock.services.browser.os.access", return_value=False),
            patch("browserlock.services.browser.shutil.which", side_effect=which),
        ):
            assert find_browser_binary() == "/usr/bin/chromium"


class TestHealthCheck:
    """Tests for the control endpoint probe."""

    def test_healthy(self) -> None:
        with patch(
            "browserlock.services.browser.httpx.get",
            return_value=MagicMock(status_code=200),
        ) as get:
            assert health_check(18899) is True
        url = get.call_args.args[0]
        assert url == "http://127.0.0.1:18899/json/version"
        assert get.call_args.kwargs["timeout"] <= 1.0

    def test_connection_refused(self) -> None:
        with patch(
            "browserlock.services.browser.httpx.get",
            side_effect=httpx.ConnectError("refused"),
        ):
            assert health_check(18899) is False

    def test_non_200(self) -> None:
        with patch(
            "browserlock.services.browser.httpx.get",
            return_value=MagicMock(status_code=404),
        ):
            assert health_check(18899) is False


class TestEnsureRunning:
    """Tests for ResourceSupervisor.ensure_running."""

    def test_adopts_healthy_browser(self, tmp_path: Path) -> None:
        """A browser already answering is reused, not duplicated."""
        supervisor = make_supervisor(tmp_path, RecordingMonitor(port_pids=[4242]))

        with (
            patch("browserlock.services.browser.health_check", return_value=True),
            patch("browserlock.services.browser.subprocess.Popen") as popen,
        ):
            handle = supervisor.ensure_running()

        popen.assert_not_called()
        assert handle.pid == 4242
        assert handle.started is False
        assert handle.healthy is True

    def test_launch_exits_early(self, tmp_path: Path) -> None:
        """A browser that dies during startup fails fast."""
        supervisor = make_supervisor(tmp_path, RecordingMonitor(), binary=sys.executable)
        # Plain python rejects the Chrome flags and exits with code 2
        supervisor.probe_attempts = 40
        supervisor.probe_interval = 0.1

        with (
            patch("browserlock.services.browser.health_check", return_value=False),
            pytest.raises(LaunchFailed, match="exited with code"),
        ):
            supervisor.ensure_running(headless=True)

        assert not (tmp_path / "browser.pid").exists()

    def test_launch_never_healthy(self, tmp_path: Path, fake_browser: Path) -> None:
        """A browser that never answers is terminated before LaunchFailed."""
        monitor = RecordingMonitor()
        supervisor = make_supervisor(tmp_path, monitor, binary=str(fake_browser))

        with (
            patch("browserlock.services.browser.health_check", return_value=False),
            pytest.raises(LaunchFailed, match="did not answer"),
        ):
            supervisor.ensure_running(headless=True)

        assert len(monitor.terminated) == 1
        assert ProcessMonitor().is_alive(monitor.terminated[0]) is False
        assert not (tmp_path / "browser.pid").exists()

    def test_launch_becomes_healthy(self, tmp_path: Path, fake_browser: Path) -> None:
        monitor = RecordingMonitor()
        supervisor = make_supervisor(tmp_path, monitor, binary=str(fake_browser))

        with patch(
            "browserlock.services.browser.health_check", side_effect=[False, False, True]
        ):
            handle = supervisor.ensure_running(headless=True)

        try:
            assert handle.started is True
            assert handle.pid > 0
            assert (tmp_path / "browser.pid").read_text().strip() == str(handle.pid)
            assert (tmp_path / "profile").is_dir()
        finally:
            supervisor.stop(handle.pid)
        assert ProcessMonitor().is_alive(handle.pid) is False


class TestBuildCommand:
    """Tests for the browser argv."""

    def test_flags(self, tmp_path: Path) -> None:
        supervisor = ResourceSupervisor(
            BrowserConfig(extra_args=["--lang=en-US"]), pid_file=tmp_path / "pid"
        )
        cmd = supervisor.build_command("chrome", 18800, tmp_path / "profile", headless=True)

        assert cmd[0] == "chrome"
        assert "--remote-debugging-port=18800" in cmd
        assert f"--user-data-dir={tmp_path / 'profile'}" in cmd
        assert "--headless=new" in cmd
        assert "--lang=en-US" in cmd
        assert cmd[-1] == "about:blank"

    def test_headed(self, tmp_path: Path) -> None:
        supervisor = ResourceSupervisor(BrowserConfig(), pid_file=tmp_path / "pid")
        cmd = supervisor.build_command("chrome", 18800, tmp_path, headless=False)
        assert "--headless=new" not in cmd


class TestStop:
    """Tests for ResourceSupervisor.stop."""

    def test_stops_tracked_pid_file_and_port_processes(self, tmp_path: Path, spawn) -> None:
        tracked, from_file, on_port = spawn(), spawn(), spawn()
        monitor = RecordingMonitor(port_pids=[on_port.pid])
        supervisor = make_supervisor(tmp_path, monitor)
        (tmp_path / "browser.pid").write_text(f"{from_file.pid}\n")

        supervisor.stop(tracked.pid)

        assert monitor.terminated == [tracked.pid, from_file.pid, on_port.pid]
        for proc in (tracked, from_file, on_port):
            assert ProcessMonitor().is_alive(proc.pid) is False
        assert not (tmp_path / "browser.pid").exists()

    def test_nothing_to_stop(self, tmp_path: Path, dead_pid: int) -> None:
        supervisor = make_supervisor(tmp_path, RecordingMonitor())
        supervisor.stop(dead_pid)
        supervisor.stop(None)
