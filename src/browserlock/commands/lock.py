"""acquire, release and status commands."""

import os

import typer

from ..config import get_config
from ..core import LockManager
from ..errors import BrowserLockError
from ..output import get_output_context


def acquire() -> None:
    """Reserve the shared browser and start it on the CDP port."""
    ctx = get_output_context()
    try:
        manager = LockManager(get_config())
        # The calling shell holds the lock; this CLI process exits right away
        record = manager.acquire(holder_pid=os.getppid())
    except BrowserLockError as e:
        ctx.error(str(e), label=e.label)
        raise typer.Exit(e.exit_code) from None

    ctx.success(
        f"Lock acquired (holder PID {record.holder_pid}, browser PID "
        f"{record.resource_pid or 'unknown'}, CDP port {record.port})",
        data=record.model_dump(mode="json"),
    )


def release() -> None:
    """Stop the browser and release the lock. Safe to run at any time."""
    ctx = get_output_context()
    try:
        manager = LockManager(get_config())
    except BrowserLockError as e:
        ctx.error(str(e), label=e.label)
        raise typer.Exit(e.exit_code) from None

    manager.release()
    ctx.success(
        "Released. The browser can be restarted by its owner.",
        data={"port": manager.port},
    )


def status() -> None:
    """Show lock and browser state."""
    ctx = get_output_context()
    try:
        manager = LockManager(get_config())
    except BrowserLockError as e:
        ctx.error(str(e), label=e.label)
        raise typer.Exit(e.exit_code) from None

    report = manager.status()
    if ctx.json_mode:
        ctx.print_json(report.model_dump(mode="json"))
        return

    ctx.print("[bold]--- Browser Lock Status ---[/bold]")
    if report.locked:
        state = report.state.value if report.state else "unknown"
        ctx.print(
            f"[yellow]Locked[/yellow] by PID {report.holder_pid} "
            f"({state}, {report.age_seconds:.0f}s old)"
        )
        if report.expired:
            ctx.print(
                "[red]  Expired: the next acquire will force-release it[/red]"
            )
    elif report.stale:
        holder = f" (PID {report.holder_pid} dead)" if report.holder_pid else ""
        ctx.print(f"[yellow]Stale lock{holder}[/yellow]")
    else:
        ctx.print("[green]Unlocked[/green]")

    if report.resource_healthy:
        pid = f" (PID {report.resource_pid})" if report.resource_pid else ""
        ctx.print(f"Browser running on CDP port {report.port}{pid}")
    else:
        ctx.print(f"No browser on CDP port {report.port}")
