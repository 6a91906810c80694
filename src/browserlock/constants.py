"""Constants for browser-lock."""

# Defaults for the shared browser endpoint
DEFAULT_CDP_PORT = 18800
DEFAULT_LOCK_FILE = "/tmp/openclaw-browser.lock"
DEFAULT_PID_FILE = "/tmp/openclaw-browser-standalone.pid"
DEFAULT_PROFILE_SUBDIR = ".openclaw/browser/openclaw/user-data"
DEFAULT_CONFIG_SUBDIR = ".config/browser-lock"
CONFIG_FILENAME = "config.toml"

# Timeouts (seconds)
LOCK_TIMEOUT = 600  # Lock expires after 10 minutes regardless of liveness
RUN_TIMEOUT = 300  # Default watchdog deadline for `run`
HEALTH_CHECK_TIMEOUT = 1.0
TERMINATE_GRACE = 1.0
GUARD_TIMEOUT = 30.0  # Wait for another process inspecting or recovering the lock

# Launch probing: fixed interval, fixed attempt count
LAUNCH_PROBE_ATTEMPTS = 10
LAUNCH_PROBE_INTERVAL = 0.5

# Lock file creation retries (stale record cleared between attempts)
MAX_LOCK_RETRIES = 3

# Ports probed by consumers when nothing else points at the browser
CDP_PROBE_PORTS = (18800, 9222, 9229)

# Exit codes
EXIT_CONFIG_ERROR = 2
EXIT_LOCK_HELD = 3
EXIT_RESOURCE_UNAVAILABLE = 4
EXIT_TIMEOUT = 124  # Same code GNU timeout uses
EXIT_COMMAND_NOT_FOUND = 127
