"""Run orchestrator: acquire, run a consumer under a deadline, release.

The consumer runs as a child process leading its own session. A watchdog
timer races it; if the watchdog fires first the consumer's whole process
group is terminated (SIGTERM, then SIGKILL after the grace period) and the
run reports a timeout. Whatever happens, including errors and termination
signals aimed at the orchestrator, the lock is released before returning.
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from types import FrameType

from ..config import BrowserLockConfig
from ..constants import EXIT_COMMAND_NOT_FOUND, EXIT_TIMEOUT
from ..errors import BrowserLockError, ConsumerTimeout
from ..models import RunResult, RunState
from ..services import ProcessMonitor
from .lock_manager import LockManager

logger = logging.getLogger(__name__)


class OrchestratorInterrupted(Exception):
    """The orchestrating process received a termination signal."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"Interrupted by {signal.Signals(signum).name}")


def _signal_group(pgid: int, sig: int) -> bool:
    """Signal a consumer's process group; False once the group is gone."""
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        return False
    except PermissionError:
        logger.warning("Not allowed to signal process group %d", pgid)
        return False
    return True


class Watchdog:
    """Timer that terminates a consumer's process group once its deadline passes."""

    def __init__(
        self,
        process: subprocess.Popen,
        timeout: float,
        grace_seconds: float,
        monitor: ProcessMonitor | None = None,
    ) -> None:
        self.process = process
        self.timeout = timeout
        self.grace_seconds = grace_seconds
        self.monitor = monitor or ProcessMonitor()
        self.fired = threading.Event()
        self._timer = threading.Timer(timeout, self._fire)
        self._timer.daemon = True
        self._kill_timer: threading.Timer | None = None

    def start(self) -> None:
        self._timer.start()

    def cancel(self) -> None:
        """Stop the watchdog; safe to call after it fired."""
        self._timer.cancel()
        if self._kill_timer is not None:
            self._kill_timer.cancel()

    def _fire(self) -> None:
        # A consumer that exited but is not reaped yet is a zombie, not a timeout
        if self.process.returncode is not None or not self.monitor.is_alive(self.process.pid):
            return
        self.fired.set()
        logger.warning(
            "Consumer PID %d exceeded %gs, terminating", self.process.pid, self.timeout
        )
        _signal_group(self.process.pid, signal.SIGTERM)
        self._kill_timer = threading.Timer(self.grace_seconds, self._force_kill)
        self._kill_timer.daemon = True
        self._kill_timer.start()

    def _force_kill(self) -> None:
        if self.process.returncode is None and self.monitor.is_alive(self.process.pid):
            logger.warning("Consumer PID %d ignored SIGTERM, killing", self.process.pid)
            _signal_group(self.process.pid, signal.SIGKILL)


@contextmanager
def _release_on_signals() -> Iterator[None]:
    """Turn SIGTERM/SIGHUP into an exception so cleanup still runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum: int, frame: FrameType | None) -> None:
        raise OrchestratorInterrupted(signum)

    handled = [signal.SIGTERM]
    if hasattr(signal, "SIGHUP"):
        handled.append(signal.SIGHUP)
    originals = {sig: signal.signal(sig, _handler) for sig in handled}
    try:
        yield
    finally:
        for sig, original in originals.items():
            signal.signal(sig, original)


def build_consumer_command(
    command: str, args: Sequence[str], node_exec: str = "node"
) -> list[str]:
    """Argv for the consumer; .js scripts run through node."""
    if command.endswith((".js", ".mjs", ".cjs")):
        return [node_exec, command, *args]
    return [command, *args]


class RunOrchestrator:
    """Composes the lock manager and a watchdog around one consumer run."""

    def __init__(self, config: BrowserLockConfig, lock_manager: LockManager | None = None) -> None:
        self.config = config
        self.lock_manager = lock_manager or LockManager(config)
        self.states: list[RunState] = [RunState.IDLE]
        self._process: subprocess.Popen | None = None
        self._watchdog: Watchdog | None = None

    @property
    def state(self) -> RunState:
        return self.states[-1]

    def _enter(self, state: RunState) -> None:
        logger.debug("Run state: %s -> %s", self.state.value, state.value)
        self.states.append(state)

    def consumer_env(self) -> dict[str, str]:
        """Environment for the consumer, pointing it at the reserved browser."""
        port = self.config.browser.port
        return {**os.environ, "CDP_PORT": str(port), "CDP_URL": f"http://127.0.0.1:{port}"}

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout_seconds: float | None = None,
    ) -> RunResult:
        """Acquire the lock, run the consumer under a deadline, release.

        Args:
            command: Consumer executable or .js script
            args: Consumer arguments
            timeout_seconds: Watchdog deadline (defaults to config)

        Returns:
            RunResult; exit_code is the consumer's own, or EXIT_TIMEOUT

        Raises:
            LockHeld: If another process holds the lock (nothing to release)
            ResourceUnavailable: If the browser could not be started
            BrowserLockError: If the lock could not be taken for another reason
        """
        if timeout_seconds is None:
            timeout_seconds = self.config.run.default_timeout
        argv = build_consumer_command(command, args, self.config.run.node_exec)
        start = time.monotonic()

        self._enter(RunState.ACQUIRING)
        try:
            self.lock_manager.acquire()
        except BrowserLockError:
            self._enter(RunState.LOCK_DENIED)
            self._enter(RunState.DONE)
            raise

        try:
            with _release_on_signals():
                result = self._supervise(argv, timeout_seconds, start)
        finally:
            self._cleanup_consumer()
            self._enter(RunState.RELEASING)
            self.lock_manager.release(owner_only=True)
            self._enter(RunState.DONE)

        result.states = list(self.states)
        return result

    def _supervise(self, argv: list[str], timeout: float, start: float) -> RunResult:
        """Spawn the consumer and race it against the watchdog."""
        self._enter(RunState.RUNNING)
        logger.info("Running: %s", shlex.join(argv))
        try:
            self._process = subprocess.Popen(
                argv,
                env=self.consumer_env(),
                start_new_session=True,  # Own process group: signals reach its children too
            )
        except FileNotFoundError:
            logger.error("Command not found: %s", argv[0])
            self._enter(RunState.COMPLETED)
            return self._result(EXIT_COMMAND_NOT_FOUND, "COMMAND_NOT_FOUND", start)

        process = self._process
        self.lock_manager.bind(process.pid, shlex.join(argv))
        self._watchdog = Watchdog(process, timeout, self.config.run.grace_seconds)
        self._watchdog.start()
        exit_code = process.wait()
        self._watchdog.cancel()

        if self._watchdog.fired.is_set():
            self._enter(RunState.TIMED_OUT)
            logger.error(str(ConsumerTimeout(timeout)))
            return self._result(EXIT_TIMEOUT, ConsumerTimeout.label, start, process.pid)

        self._enter(RunState.COMPLETED)
        if exit_code < 0:
            # Killed by a signal from outside: report it the way a shell would
            exit_code = 128 - exit_code
        if exit_code != 0:
            logger.error("Script exited with code %d", exit_code)
            return self._result(exit_code, "CONSUMER_FAILED", start, process.pid)
        return self._result(0, "SUCCESS", start, process.pid)

    def _cleanup_consumer(self) -> None:
        """Cancel the watchdog and stop whatever is left of the consumer's group.

        The consumer leads its own session, so this also reaches wrapper
        children (shell scripts, npx, worker processes) that outlived it.
        """
        if self._watchdog is not None:
            self._watchdog.cancel()
        process = self._process
        if process is None:
            return
        if process.poll() is None:
            logger.warning("Stopping consumer PID %d", process.pid)
        if not _signal_group(process.pid, signal.SIGTERM):
            return

        deadline = time.monotonic() + self.config.run.grace_seconds
        while time.monotonic() < deadline:
            process.poll()  # Reap the leader so it stops counting as a member
            if not _signal_group(process.pid, 0):
                return
            time.sleep(0.05)
        logger.warning("Killing processes left in consumer group %d", process.pid)
        _signal_group(process.pid, signal.SIGKILL)
        process.wait()

    def _result(
        self,
        exit_code: int,
        classification: str,
        start: float,
        consumer_pid: int | None = None,
    ) -> RunResult:
        return RunResult(
            exit_code=exit_code,
            final_state=self.state,
            timed_out=self.state is RunState.TIMED_OUT,
            classification=classification,
            duration_seconds=round(time.monotonic() - start, 3),
            consumer_pid=consumer_pid,
            states=list(self.states),
        )
