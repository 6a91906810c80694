"""CLI command implementations for browser-lock.

This package contains the implementation of each CLI command,
separated from the CLI framework setup in cli.py.
"""

from .endpoint import endpoint
from .init import init
from .lock import acquire, release, status
from .run import run

__all__ = [
    "acquire",
    "endpoint",
    "init",
    "release",
    "run",
    "status",
]
