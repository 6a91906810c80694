"""Core lock and run logic for browser-lock.

- lock_manager: the persisted lock record with staleness and expiry recovery
- orchestrator: acquire -> consumer under a watchdog -> release
"""

from .lock_manager import LockManager
from .orchestrator import (
    OrchestratorInterrupted,
    RunOrchestrator,
    Watchdog,
    build_consumer_command,
)

__all__ = [
    "LockManager",
    "OrchestratorInterrupted",
    "RunOrchestrator",
    "Watchdog",
    "build_consumer_command",
]
