"""Status report models."""

from enum import Enum

from pydantic import BaseModel, Field

from .lock import LockState


class RunState(str, Enum):
    """States of a single `run` lifecycle."""

    IDLE = "idle"
    ACQUIRING = "acquiring"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    LOCK_DENIED = "lock_denied"
    RELEASING = "releasing"
    DONE = "done"


class LockStatus(BaseModel):
    """Read-only snapshot of the lock and the browser.

    ``locked`` is only true for a live record; a record whose processes
    are all gone is reported with ``stale=True`` instead of being hidden.
    """

    locked: bool = False
    record_present: bool = False
    stale: bool = False
    expired: bool = False
    state: LockState | None = None
    holder_pid: int | None = None
    resource_pid: int | None = None
    age_seconds: float | None = None
    port: int
    resource_healthy: bool = False


class RunResult(BaseModel):
    """Outcome of one orchestrated run."""

    exit_code: int
    final_state: RunState = Field(description="COMPLETED, TIMED_OUT or LOCK_DENIED")
    timed_out: bool = False
    classification: str = Field(description="SUCCESS, CONSUMER_FAILED, TIMEOUT, ...")
    duration_seconds: float = 0.0
    consumer_pid: int | None = None
    states: list[RunState] = Field(default_factory=list, description="States visited")
