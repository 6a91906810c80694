"""Shared test fixtures for browser-lock tests."""

import subprocess
import sys
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from browserlock.config import BrowserConfig, BrowserLockConfig, LockConfig, RunConfig
from browserlock.services import ResourceHandle

SLEEP_FOREVER = "import time; time.sleep(60)"
IGNORE_SIGTERM = (
    "import signal, time; signal.signal(signal.SIGTERM, signal.SIG_IGN); time.sleep(60)"
)


class FakeSupervisor:
    """Stands in for ResourceSupervisor so no real browser is launched."""

    def __init__(self, pid: int = 0, healthy: bool = False, error: Exception | None = None):
        self.pid = pid
        self.healthy = healthy
        self.error = error
        self.started: list[int | None] = []
        self.stopped: list[tuple[int | None, int | None]] = []

    def ensure_running(self, port=None, profile_dir=None, headless=None) -> ResourceHandle:
        if self.error is not None:
            raise self.error
        self.started.append(port)
        self.healthy = True
        return ResourceHandle(port=port or 0, pid=self.pid, started=True, healthy=True)

    def health_check(self, port=None) -> bool:
        return self.healthy

    def stop(self, pid=None, port=None) -> None:
        self.stopped.append((pid, port))
        self.healthy = False


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture
def config(tmp_path: Path) -> BrowserLockConfig:
    """Configuration with lock state kept inside tmp_path."""
    return BrowserLockConfig(
        browser=BrowserConfig(port=18899, profile_dir=tmp_path / "profile"),
        lock=LockConfig(
            lock_file=tmp_path / "browser.lock",
            pid_file=tmp_path / "browser.pid",
            timeout_seconds=600,
        ),
        run=RunConfig(default_timeout=30, grace_seconds=0.5),
    )


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """config.toml pointing lock state at tmp_path, for CLI tests."""
    path = tmp_path / "config.toml"
    path.write_text(
        f"""[browser]
port = 18899
profile_dir = "{tmp_path / 'profile'}"

[lock]
lock_file = "{tmp_path / 'browser.lock'}"
pid_file = "{tmp_path / 'browser.pid'}"
timeout_seconds = 600

[run]
default_timeout = 30
grace_seconds = 0.5
"""
    )
    return path


@pytest.fixture
def fake_supervisor() -> FakeSupervisor:
    return FakeSupervisor()


@pytest.fixture
def spawn() -> Generator[Callable[..., subprocess.Popen], None, None]:
    """Start throwaway Python child processes; all are killed at teardown."""
    procs: list[subprocess.Popen] = []

    def _spawn(code: str = SLEEP_FOREVER, *extra: str) -> subprocess.Popen:
        proc = subprocess.Popen([sys.executable, "-c", code, *extra])
        procs.append(proc)
        return proc

    yield _spawn

    for proc in procs:
        if proc.poll() is None:
            proc.kill()
            proc.wait()


@pytest.fixture
def dead_pid() -> int:
    """PID of a process that has already exited and been reaped."""
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid
