"""Configuration management for browser-lock.

Settings come from three layers, later ones winning:
defaults, the TOML config file, then environment variables.
"""

import os
import tomllib
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError

from .constants import (
    CONFIG_FILENAME,
    DEFAULT_CDP_PORT,
    DEFAULT_CONFIG_SUBDIR,
    DEFAULT_LOCK_FILE,
    DEFAULT_PID_FILE,
    DEFAULT_PROFILE_SUBDIR,
    LOCK_TIMEOUT,
    RUN_TIMEOUT,
    TERMINATE_GRACE,
)
from .errors import ConfigError


class HeadlessMode(str, Enum):
    """Headless override for the launched browser."""

    AUTO = "auto"
    TRUE = "true"
    FALSE = "false"


class BrowserConfig(BaseModel):
    """Configuration for the shared browser process."""

    port: int = Field(default=DEFAULT_CDP_PORT, ge=1, le=65535)
    binary: str | None = None  # Auto-detected when unset
    headless: HeadlessMode = HeadlessMode.AUTO
    profile_dir: Path = Field(default_factory=lambda: Path.home() / DEFAULT_PROFILE_SUBDIR)
    extra_args: list[str] = Field(default_factory=list)


class LockConfig(BaseModel):
    """Configuration for the persisted lock record."""

    lock_file: Path = Path(DEFAULT_LOCK_FILE)
    pid_file: Path = Path(DEFAULT_PID_FILE)
    timeout_seconds: int = Field(default=LOCK_TIMEOUT, gt=0)


class RunConfig(BaseModel):
    """Configuration for `run`."""

    default_timeout: int = Field(default=RUN_TIMEOUT, gt=0)
    node_exec: str = "node"  # Interpreter for .js consumer scripts
    grace_seconds: float = Field(default=TERMINATE_GRACE, ge=0)


class BrowserLockConfig(BaseModel):
    """Root configuration for browser-lock."""

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    run: RunConfig = Field(default_factory=RunConfig)


# Environment variable -> (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "CDP_PORT": ("browser", "port"),
    "CHROME_BIN": ("browser", "binary"),
    "BROWSER_HEADLESS": ("browser", "headless"),
    "BROWSER_PROFILE_DIR": ("browser", "profile_dir"),
    "BROWSER_LOCK_FILE": ("lock", "lock_file"),
    "BROWSER_LOCK_TIMEOUT": ("lock", "timeout_seconds"),
}


def default_config_path(environ: Mapping[str, str] | None = None) -> Path:
    """Return the config file path, honoring $BROWSER_LOCK_CONFIG."""
    env = os.environ if environ is None else environ
    override = env.get("BROWSER_LOCK_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_CONFIG_SUBDIR / CONFIG_FILENAME


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> BrowserLockConfig:
    """Load configuration from file and environment.

    Args:
        config_path: Explicit config file (defaults to default_config_path())
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Loaded configuration; defaults fill anything not set

    Raises:
        ConfigError: If the file is not valid TOML or a value fails validation
    """
    env = os.environ if environ is None else environ
    path = config_path or default_config_path(env)

    data: dict = {}
    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            if key == "headless":
                value = value.strip().lower()
            data.setdefault(section, {})[key] = value

    try:
        return BrowserLockConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def write_config_template(config_path: Path) -> Path:
    """Write default config.toml template.

    Args:
        config_path: Destination file

    Returns:
        Path to the written config file
    """
    template = {
        "browser": {
            "port": DEFAULT_CDP_PORT,
            "headless": HeadlessMode.AUTO.value,
            "profile_dir": str(Path.home() / DEFAULT_PROFILE_SUBDIR),
            "extra_args": [],
        },
        "lock": {
            "lock_file": DEFAULT_LOCK_FILE,
            "pid_file": DEFAULT_PID_FILE,
            "timeout_seconds": LOCK_TIMEOUT,
        },
        "run": {
            "default_timeout": RUN_TIMEOUT,
            "node_exec": "node",
            "grace_seconds": TERMINATE_GRACE,
        },
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path


# Config file chosen by the CLI (--config), consumed by get_config()
_config_path: Path | None = None


def set_config_path(path: Path | None) -> None:
    """Set the config file used by get_config(). Called by CLI main callback."""
    global _config_path
    _config_path = path


def get_config() -> BrowserLockConfig:
    """Load configuration for the current CLI invocation."""
    return load_config(_config_path)
