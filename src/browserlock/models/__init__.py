"""Pydantic data models for browser-lock.

- LockRecord / LockState: the persisted lock record
- LockStatus: read-only status snapshot
- RunResult / RunState: outcome of an orchestrated run
"""

from .lock import LockRecord, LockState
from .status import LockStatus, RunResult, RunState

__all__ = [
    "LockRecord",
    "LockState",
    "LockStatus",
    "RunResult",
    "RunState",
]
