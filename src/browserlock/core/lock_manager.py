"""Lock manager for exclusive browser access.

Owns the single lock record on disk. A record is live while either its
holder or its browser process is running; a record with both gone is
stale and silently cleared. A record older than the lock timeout is
expired and force-released even if its processes are alive, so a hung
consumer cannot hold the browser forever.

The record is published with os.link() from a fully written temp file:
creation is atomic and exclusive, and readers never see a partial record.
Every step that changes the record (create, classify-and-clear, bind,
release) runs under a guard file lock, so two processes can never both
decide that the same stale record is theirs to remove.
"""

import contextlib
import logging
import os
from collections.abc import Iterator
from pathlib import Path

from filelock import FileLock, Timeout
from pydantic import ValidationError

from ..config import BrowserLockConfig
from ..constants import GUARD_TIMEOUT, MAX_LOCK_RETRIES
from ..errors import BrowserLockError, LockHeld
from ..models import LockRecord, LockState, LockStatus
from ..services import ProcessMonitor, ResourceSupervisor

logger = logging.getLogger(__name__)


def _tmp_path(lock_path: Path) -> Path:
    return lock_path.with_name(f"{lock_path.name}.{os.getpid()}.tmp")


def _guard_path(lock_path: Path) -> Path:
    return lock_path.with_name(f"{lock_path.name}.guard")


def _write_tmp(lock_path: Path, record: LockRecord) -> Path:
    tmp = _tmp_path(lock_path)
    tmp.write_text(record.model_dump_json(indent=2))
    return tmp


def _try_atomic_create(lock_path: Path, record: LockRecord) -> bool:
    """Attempt exclusive lock file creation.

    Returns:
        True if the record was created, False if a lock file already exists
    """
    tmp = _write_tmp(lock_path, record)
    try:
        os.link(tmp, lock_path)
        return True
    except FileExistsError:
        return False
    finally:
        tmp.unlink(missing_ok=True)


class LockManager:
    """Acquire, release and inspect the shared browser lock."""

    def __init__(
        self,
        config: BrowserLockConfig,
        supervisor: ResourceSupervisor | None = None,
        monitor: ProcessMonitor | None = None,
        guard_timeout: float = GUARD_TIMEOUT,
    ) -> None:
        self.config = config
        self.lock_path = config.lock.lock_file
        self.timeout_seconds = config.lock.timeout_seconds
        self.port = config.browser.port
        self.monitor = monitor or ProcessMonitor()
        self.supervisor = supervisor or ResourceSupervisor(
            config.browser,
            config.lock.pid_file,
            monitor=self.monitor,
            grace_seconds=config.run.grace_seconds,
        )
        # Reentrant: recovery called from acquire() reuses the held guard
        self._guard = FileLock(str(_guard_path(self.lock_path)), timeout=guard_timeout)

    @contextlib.contextmanager
    def guarded(self) -> Iterator[None]:
        """Hold the guard lock that serializes changes to the record.

        Raises:
            BrowserLockError: If another process keeps the guard past the timeout
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._guard.acquire()
        except Timeout as e:
            raise BrowserLockError(
                f"Timed out waiting for lock guard {self._guard.lock_file}"
            ) from e
        try:
            yield
        finally:
            self._guard.release()

    def read(self) -> LockRecord | None:
        """Get the current lock record.

        Returns:
            The record, or None if missing or unreadable
        """
        try:
            return LockRecord.model_validate_json(self.lock_path.read_text())
        except FileNotFoundError:
            return None
        except (OSError, ValidationError) as e:
            logger.debug("Unreadable lock file %s: %s", self.lock_path, e)
            return None

    def is_live(self, record: LockRecord) -> bool:
        """A record is live while its holder or its browser is running."""
        return self.monitor.is_alive(record.holder_pid) or self.monitor.is_alive(
            record.resource_pid
        )

    def check_and_recover_expired(self, now: float | None = None) -> bool:
        """Force-release the current record if it outlived the lock timeout.

        Returns:
            True if an expired record was recovered
        """
        with self.guarded():
            record = self.read()
            if record is None or not record.is_expired(self.timeout_seconds, now):
                return False
            logger.warning(
                "Lock held by PID %d expired after %.0fs (timeout %ds), forcing release",
                record.holder_pid,
                record.age(now),
                self.timeout_seconds,
            )
            self._force_release(record)
            return True

    def acquire(self, holder_pid: int | None = None) -> LockRecord:
        """Take the lock and make sure the browser is running.

        Args:
            holder_pid: Process to record as holder (defaults to this process)

        Returns:
            The written lock record

        Raises:
            LockHeld: If a live, unexpired lock exists
            ResourceUnavailable: If the browser cannot be started
        """
        record = LockRecord(
            holder_pid=holder_pid or os.getpid(),
            port=self.port,
            supervisor_pid=os.getpid(),
        )
        with self.guarded():
            self.check_and_recover_expired()
            self._create(record)

        # The record is published: the browser launch runs outside the guard
        try:
            handle = self.supervisor.ensure_running(port=self.port)
        except BaseException:
            with self.guarded():
                if self._is_own(record):
                    self._remove_record()
            raise

        record.resource_pid = handle.pid
        with self.guarded():
            if not self._is_own(record):
                raise BrowserLockError("Lock was released while the browser was starting")
            self._rewrite(record)
        logger.info("Lock acquired by PID %d (browser PID %d)", record.holder_pid, handle.pid)
        return record

    def bind(self, consumer_pid: int, command: str | None = None) -> LockRecord | None:
        """Point the record at the running consumer.

        The consumer becomes the holder, so the lock stays live as long as
        it runs even if the supervising process dies.

        Returns:
            The refined record, or None if this process no longer owns the lock
        """
        with self.guarded():
            record = self.read()
            if record is None or record.supervisor_pid != os.getpid():
                logger.warning("Lock no longer owned by this process, not binding consumer")
                return None
            record.holder_pid = consumer_pid
            record.consumer_pid = consumer_pid
            record.command = command
            record.state = LockState.BOUND
            self._rewrite(record)
            return record

    def release(self, owner_only: bool = False) -> None:
        """Stop the browser and remove the lock record.

        Idempotent and never raises for missing records or processes.

        Args:
            owner_only: Leave a record written by another process untouched
                (it took over after this process's lock expired)
        """
        with self.guarded():
            record = self.read()
            if owner_only and record is not None and record.supervisor_pid != os.getpid():
                logger.warning(
                    "Lock was taken over by PID %d, leaving it in place", record.holder_pid
                )
                return

            if record is not None:
                self.supervisor.stop(record.resource_pid, record.port or self.port)
            else:
                self.supervisor.stop(None, self.port)
            self._remove_record()
        logger.info("Released. The browser can be restarted by its owner.")

    def status(self) -> LockStatus:
        """Read-only snapshot of the lock and browser health."""
        record = self.read()
        port = record.port if record and record.port else self.port
        healthy = self.supervisor.health_check(port)

        if record is None:
            present = self.lock_path.exists()
            return LockStatus(
                record_present=present,
                stale=present,
                port=port,
                resource_healthy=healthy,
            )

        live = self.is_live(record)
        return LockStatus(
            locked=live,
            record_present=True,
            stale=not live,
            expired=record.is_expired(self.timeout_seconds),
            state=record.state,
            holder_pid=record.holder_pid,
            resource_pid=record.resource_pid or None,
            age_seconds=record.age(),
            port=port,
            resource_healthy=healthy,
        )

    def _create(self, record: LockRecord) -> None:
        """Publish a new record, clearing stale or unreadable ones. Guard must be held."""
        existing: LockRecord | None = None
        for _ in range(MAX_LOCK_RETRIES):
            if _try_atomic_create(self.lock_path, record):
                return

            existing = self.read()
            if existing is None:
                logger.warning("Removing unreadable lock file %s", self.lock_path)
                self._remove_record()
                continue

            if existing.is_expired(self.timeout_seconds):
                self.check_and_recover_expired()
                continue

            if not self.is_live(existing):
                logger.warning(
                    "Stale lock (PID %d dead), cleaning...",
                    existing.holder_pid,
                )
                self._remove_record()
                continue

            raise LockHeld(existing.holder_pid, existing.age())

        if existing is not None:
            raise LockHeld(existing.holder_pid, existing.age())
        raise BrowserLockError("Failed to acquire lock after multiple attempts")

    def _is_own(self, record: LockRecord) -> bool:
        """True if the record on disk is still the one this acquire published."""
        current = self.read()
        return (
            current is not None
            and current.supervisor_pid == record.supervisor_pid
            and current.acquired_at == record.acquired_at
        )

    def _force_release(self, record: LockRecord) -> None:
        if record.state is LockState.BOUND and record.consumer_pid:
            self.monitor.terminate(record.consumer_pid, self.config.run.grace_seconds)
        self.supervisor.stop(record.resource_pid, record.port or self.port)
        self._remove_record()

    def _rewrite(self, record: LockRecord) -> None:
        tmp = _write_tmp(self.lock_path, record)
        os.replace(tmp, self.lock_path)

    def _remove_record(self) -> None:
        with contextlib.suppress(FileNotFoundError):
            self.lock_path.unlink()
