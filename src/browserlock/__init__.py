"""browser-lock: exclusive access to a shared remote-debuggable browser."""

__version__ = "0.1.0"
