"""Lock record model for exclusive browser access.

A single LockRecord at a well-known path means "browser reserved".
It is written in two phases: ``reserved`` when acquire succeeds, then
``bound`` once the consumer process is running and its PID is known.
"""

import time
from enum import Enum

from pydantic import BaseModel, Field


class LockState(str, Enum):
    """Phase of the lock record."""

    RESERVED = "reserved"  # Browser is up, no consumer yet
    BOUND = "bound"  # Holder is the running consumer process


class LockRecord(BaseModel):
    """Active lock written to the lock file.

    Attributes:
        holder_pid: Process that owns the lock (orchestrator, shell or consumer).
        resource_pid: PID of the supervised browser, 0 if unknown.
        acquired_at: Seconds since epoch when the lock was taken.
        state: Reserved at acquire time, bound once the consumer starts.
        port: Control port of the reserved browser.
        supervisor_pid: Process that wrote the record.
        consumer_pid: PID of the consumer once bound.
        command: Consumer command line once bound.
    """

    holder_pid: int = Field(description="Process ID holding the lock")
    resource_pid: int = Field(default=0, description="Browser process ID, 0 if unknown")
    acquired_at: float = Field(default_factory=time.time)
    state: LockState = LockState.RESERVED
    port: int | None = None
    supervisor_pid: int | None = None
    consumer_pid: int | None = None
    command: str | None = None

    def age(self, now: float | None = None) -> float:
        """Seconds since the lock was acquired."""
        return max(0.0, (now if now is not None else time.time()) - self.acquired_at)

    def is_expired(self, timeout_seconds: float, now: float | None = None) -> bool:
        """True if the lock is older than the timeout, whatever its liveness."""
        return self.age(now) > timeout_seconds
