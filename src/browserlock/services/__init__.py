"""External process and network integrations for browser-lock.

- process: PID liveness, termination and port sweeps (psutil)
- browser: launching and health-checking the shared browser (httpx)
- discovery: CDP endpoint discovery for automation scripts
"""

from .browser import (
    ResourceHandle,
    ResourceSupervisor,
    find_browser_binary,
    health_check,
    resolve_headless,
)
from .discovery import discover_cdp_port, discover_cdp_url
from .process import ProcessMonitor

__all__ = [
    "ProcessMonitor",
    "ResourceHandle",
    "ResourceSupervisor",
    "discover_cdp_port",
    "discover_cdp_url",
    "find_browser_binary",
    "health_check",
    "resolve_headless",
]
