"""Process liveness and termination for browser-lock.

Wraps psutil so the lock manager and supervisor can ask "is this PID
alive" and "make this PID go away" without shelling out to ps/kill.
"""

import logging
import os

import psutil

from ..constants import TERMINATE_GRACE

logger = logging.getLogger(__name__)


class ProcessMonitor:
    """Liveness probe and graceful-then-forced termination by PID."""

    def is_alive(self, pid: int | None) -> bool:
        """Check if a process with given PID is running.

        Zombies count as dead: an exited child that nobody reaped yet
        must not keep a lock alive.
        """
        if not pid or pid <= 0:
            return False
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            # Exists but owned by another user
            return True

    def terminate(self, pid: int | None, grace_seconds: float = TERMINATE_GRACE) -> bool:
        """Send SIGTERM, wait up to grace_seconds, then SIGKILL.

        Args:
            pid: Process to stop (None/0 is a no-op)
            grace_seconds: Time allowed for a clean exit

        Returns:
            True if a running process was signalled
        """
        if not pid or pid <= 0 or pid == os.getpid():
            return False
        try:
            proc = psutil.Process(pid)
            proc.terminate()
        except psutil.NoSuchProcess:
            return False
        except psutil.AccessDenied:
            logger.warning("Not allowed to signal PID %d", pid)
            return False

        try:
            proc.wait(timeout=grace_seconds)
            logger.debug("PID %d exited after SIGTERM", pid)
        except psutil.TimeoutExpired:
            logger.debug("PID %d ignored SIGTERM, sending SIGKILL", pid)
            try:
                proc.kill()
                proc.wait(timeout=grace_seconds)
            except psutil.NoSuchProcess:
                pass
            except psutil.TimeoutExpired:
                logger.warning("PID %d still present after SIGKILL", pid)
        except psutil.NoSuchProcess:
            pass
        return True

    def find_by_port(self, port: int) -> list[int]:
        """Find processes bound to a remote-debugging port.

        Matches both the ``--remote-debugging-port=<port>`` command-line flag
        and sockets listening on the port. Listeners come first, since they
        are the process actually serving the endpoint. The calling process
        is never included.

        Args:
            port: Control port to look for

        Returns:
            PIDs, listeners first, without duplicates
        """
        own_pid = os.getpid()
        pids: list[int] = []

        try:
            for conn in psutil.net_connections(kind="tcp"):
                if (
                    conn.pid
                    and conn.laddr
                    and conn.laddr.port == port
                    and conn.status == psutil.CONN_LISTEN
                ):
                    pids.append(conn.pid)
        except psutil.AccessDenied:
            # macOS needs root for system-wide connections; the cmdline scan still runs
            logger.debug("Listening sockets not visible, falling back to cmdline scan")

        flag = f"--remote-debugging-port={port}"
        # process_iter fills inaccessible fields with None instead of raising
        for proc in psutil.process_iter(["pid", "cmdline"]):
            if flag in (proc.info.get("cmdline") or []):
                pids.append(proc.info["pid"])

        return [pid for pid in dict.fromkeys(pids) if pid != own_pid]
