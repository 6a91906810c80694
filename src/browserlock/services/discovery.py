"""CDP endpoint discovery for automation scripts.

Consumers must attach to the browser that browser-lock reserved rather than
starting their own. The port is found by, in order: inspecting running
processes, the CDP_PORT environment variable, probing well-known ports.
"""

import logging
import os
import re
from collections.abc import Iterable, Mapping

import psutil

from ..constants import CDP_PROBE_PORTS
from ..errors import ResourceUnavailable
from .browser import health_check

logger = logging.getLogger(__name__)

_PORT_FLAG = re.compile(r"^--remote-debugging-port=(\d+)$")


def ports_from_processes() -> list[int]:
    """Remote-debugging ports named on running processes' command lines."""
    ports: list[int] = []
    for proc in psutil.process_iter(["cmdline"]):
        for arg in proc.info.get("cmdline") or []:
            match = _PORT_FLAG.match(arg)
            if match and int(match.group(1)) > 0:
                ports.append(int(match.group(1)))
    return list(dict.fromkeys(ports))


def discover_cdp_port(
    environ: Mapping[str, str] | None = None,
    probe_ports: Iterable[int] = CDP_PROBE_PORTS,
) -> int:
    """Find the control port of the running shared browser.

    Raises:
        ResourceUnavailable: If no browser can be found
    """
    env = os.environ if environ is None else environ

    ports = ports_from_processes()
    if ports:
        logger.debug("Found CDP port %d from process list", ports[0])
        return ports[0]

    if env.get("CDP_PORT", "").isdigit():
        return int(env["CDP_PORT"])

    for port in probe_ports:
        if health_check(port):
            logger.debug("Found CDP endpoint by probing port %d", port)
            return port

    raise ResourceUnavailable(
        "CDP port not found. Is Chrome running with --remote-debugging-port?"
    )


def discover_cdp_url(environ: Mapping[str, str] | None = None) -> str:
    """HTTP URL of the shared browser's DevTools endpoint."""
    return f"http://127.0.0.1:{discover_cdp_port(environ)}"
