"""Supervisor for the shared remote-debuggable browser.

Starts Chrome/Chromium on the control port, health-checks it through the
DevTools ``/json/version`` endpoint and tears it down again. An instance
that already answers on the port is adopted instead of duplicated.
"""

import logging
import os
import shutil
import subprocess
import sys
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..config import BrowserConfig, HeadlessMode
from ..constants import (
    HEALTH_CHECK_TIMEOUT,
    LAUNCH_PROBE_ATTEMPTS,
    LAUNCH_PROBE_INTERVAL,
    TERMINATE_GRACE,
)
from ..errors import LaunchFailed
from .process import ProcessMonitor

logger = logging.getLogger(__name__)

MACOS_CHROME = "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome"
BINARY_CANDIDATES = ("google-chrome", "google-chrome-stable", "chromium-browser", "chromium")

LAUNCH_FLAGS = [
    "--no-first-run",
    "--no-default-browser-check",
    "--disable-sync",
    "--disable-background-networking",
    "--disable-component-update",
    "--disable-features=Translate,MediaRouter",
    "--disable-session-crashed-bubble",
    "--hide-crash-restore-bubble",
    "--password-store=basic",
    "--disable-blink-features=AutomationControlled",
]


@dataclass
class ResourceHandle:
    """Process-local view of the supervised browser."""

    port: int
    pid: int = 0  # 0 when an adopted browser's PID could not be found
    started: bool = False  # True if this supervisor launched it
    healthy: bool = False


def resolve_headless(
    mode: HeadlessMode,
    environ: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> bool:
    """Decide whether to launch headless.

    An explicit true/false wins. In auto mode Linux/BSD hosts without an X11
    or Wayland display run headless; macOS and Windows always have a display.
    """
    if mode is HeadlessMode.TRUE:
        return True
    if mode is HeadlessMode.FALSE:
        return False

    env = os.environ if environ is None else environ
    plat = sys.platform if platform is None else platform
    if plat == "darwin" or plat.startswith("win"):
        return False
    return not (env.get("DISPLAY") or env.get("WAYLAND_DISPLAY"))


def find_browser_binary(configured: str | None = None) -> str:
    """Locate a Chrome/Chromium executable.

    Args:
        configured: Explicit path or command name from config/CHROME_BIN

    Returns:
        Executable path

    Raises:
        LaunchFailed: If no browser can be found
    """
    if configured:
        resolved = shutil.which(configured)
        if resolved:
            return resolved
        raise LaunchFailed(f"Browser binary not found: {configured}")

    if os.access(MACOS_CHROME, os.X_OK):
        return MACOS_CHROME
    for name in BINARY_CANDIDATES:
        resolved = shutil.which(name)
        if resolved:
            return resolved
    raise LaunchFailed("Chrome not found. Set CHROME_BIN.")


def health_url(port: int) -> str:
    """DevTools version endpoint for a control port."""
    return f"http://127.0.0.1:{port}/json/version"


def health_check(port: int, timeout: float = HEALTH_CHECK_TIMEOUT) -> bool:
    """Return True if a browser answers on the control port."""
    try:
        response = httpx.get(health_url(port), timeout=timeout, trust_env=False)
    except httpx.HTTPError as e:
        logger.debug("Health check on port %d failed: %s", port, e)
        return False
    return response.status_code == 200


class ResourceSupervisor:
    """Starts, probes and stops the browser bound to the control port."""

    def __init__(
        self,
        config: BrowserConfig,
        pid_file: Path,
        monitor: ProcessMonitor | None = None,
        grace_seconds: float = TERMINATE_GRACE,
        probe_attempts: int = LAUNCH_PROBE_ATTEMPTS,
        probe_interval: float = LAUNCH_PROBE_INTERVAL,
    ) -> None:
        self.config = config
        self.pid_file = pid_file
        self.monitor = monitor or ProcessMonitor()
        self.grace_seconds = grace_seconds
        self.probe_attempts = probe_attempts
        self.probe_interval = probe_interval

    def health_check(self, port: int | None = None) -> bool:
        """Short-timeout probe of the control endpoint."""
        return health_check(port or self.config.port)

    def discover_pid(self, port: int | None = None) -> int:
        """PID of whatever serves the control port, 0 if unknown."""
        pids = self.monitor.find_by_port(port or self.config.port)
        return pids[0] if pids else 0

    def build_command(self, binary: str, port: int, profile_dir: Path, headless: bool) -> list[str]:
        """Full argv for launching the browser."""
        cmd = [
            binary,
            f"--remote-debugging-port={port}",
            f"--user-data-dir={profile_dir}",
            *LAUNCH_FLAGS,
        ]
        if headless:
            cmd.append("--headless=new")
        cmd.extend(self.config.extra_args)
        cmd.append("about:blank")
        return cmd

    def ensure_running(
        self,
        port: int | None = None,
        profile_dir: Path | None = None,
        headless: bool | None = None,
    ) -> ResourceHandle:
        """Make sure a healthy browser answers on the control port.

        Adopts a browser that is already healthy; otherwise launches one and
        polls its health endpoint a fixed number of times.

        Args:
            port: Control port (defaults to config)
            profile_dir: User data directory (defaults to config)
            headless: Headless override (defaults to resolve_headless())

        Returns:
            Handle with the browser PID

        Raises:
            LaunchFailed: If the browser cannot be started or never gets healthy
        """
        port = port or self.config.port
        profile_dir = profile_dir or self.config.profile_dir

        if self.health_check(port):
            pid = self.discover_pid(port)
            logger.info(
                "Browser already running on CDP port %d (PID %s), reusing it",
                port,
                pid or "unknown",
            )
            return ResourceHandle(port=port, pid=pid, started=False, healthy=True)

        binary = find_browser_binary(self.config.binary)
        if headless is None:
            headless = resolve_headless(self.config.headless)
        profile_dir.mkdir(parents=True, exist_ok=True)
        cmd = self.build_command(binary, port, profile_dir, headless)

        logger.info("Starting browser on CDP port %d%s", port, " (headless)" if headless else "")
        logger.debug("Browser command: %s", " ".join(cmd))
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,  # Outlives the CLI invocation that started it
            )
        except OSError as e:
            raise LaunchFailed(f"Cannot start browser {binary}: {e}") from e
        self._write_pid_file(proc.pid)

        for attempt in range(1, self.probe_attempts + 1):
            if self.health_check(port):
                logger.info("Browser ready (PID %d, CDP port %d)", proc.pid, port)
                return ResourceHandle(port=port, pid=proc.pid, started=True, healthy=True)
            if proc.poll() is not None:
                self._remove_pid_file()
                raise LaunchFailed(
                    f"Browser exited with code {proc.returncode} before becoming healthy"
                )
            logger.debug("Waiting for browser (attempt %d/%d)", attempt, self.probe_attempts)
            time.sleep(self.probe_interval)

        self.stop(proc.pid, port)
        raise LaunchFailed(
            f"Browser did not answer on port {port} after "
            f"{self.probe_attempts * self.probe_interval:g}s"
        )

    def stop(self, pid: int | None = None, port: int | None = None) -> None:
        """Terminate the browser and anything else bound to the control port.

        Never raises for processes that are already gone.

        Args:
            pid: Tracked browser PID, if any
            port: Control port to sweep (defaults to config)
        """
        port = port or self.config.port
        candidates = [pid, self._read_pid_file(), *self.monitor.find_by_port(port)]
        for candidate in dict.fromkeys(c for c in candidates if c):
            if self.monitor.terminate(candidate, self.grace_seconds):
                logger.info("Stopped browser process %d on CDP port %d", candidate, port)
        self._remove_pid_file()

    def _read_pid_file(self) -> int | None:
        try:
            return int(self.pid_file.read_text().strip())
        except (OSError, ValueError):
            return None

    def _write_pid_file(self, pid: int) -> None:
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(f"{pid}\n")

    def _remove_pid_file(self) -> None:
        self.pid_file.unlink(missing_ok=True)
