"""Error taxonomy for browser-lock.

Each error carries the classification label printed on failure and the
exit code the CLI returns for it.
"""

from .constants import EXIT_CONFIG_ERROR, EXIT_LOCK_HELD, EXIT_RESOURCE_UNAVAILABLE, EXIT_TIMEOUT


class BrowserLockError(Exception):
    """Base exception for browser-lock errors."""

    label = "ERROR"
    exit_code = 1


class ConfigError(BrowserLockError):
    """Raised when configuration cannot be loaded or is invalid."""

    label = "CONFIG_ERROR"
    exit_code = EXIT_CONFIG_ERROR


class LockHeld(BrowserLockError):
    """Raised when a live, unexpired lock is held by another process."""

    label = "LOCK_HELD"
    exit_code = EXIT_LOCK_HELD

    def __init__(self, holder_pid: int, age_seconds: float) -> None:
        self.holder_pid = holder_pid
        self.age_seconds = age_seconds
        super().__init__(
            f"Lock held by PID {holder_pid} for {age_seconds:.0f}s. Use 'release' first."
        )


class ResourceUnavailable(BrowserLockError):
    """Raised when the shared browser cannot be reached or started."""

    label = "RESOURCE_UNAVAILABLE"
    exit_code = EXIT_RESOURCE_UNAVAILABLE


class LaunchFailed(ResourceUnavailable):
    """Raised when a launched browser never became healthy."""

    label = "LAUNCH_FAILED"


class ConsumerTimeout(BrowserLockError):
    """The watchdog had to terminate the consumer."""

    label = "TIMEOUT"
    exit_code = EXIT_TIMEOUT

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Consumer exceeded {timeout_seconds:g}s timeout and was terminated")
