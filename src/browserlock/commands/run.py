"""run command: acquire, run a script under a watchdog, release."""

import signal

import typer

from ..config import get_config
from ..core import OrchestratorInterrupted, RunOrchestrator
from ..errors import BrowserLockError
from ..output import get_output_context


def run(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Script or executable to run (.js runs via node)"),
    timeout: int | None = typer.Option(
        None,
        "--timeout",
        min=1,
        help="Kill the script after N seconds (default from config)",
    ),
) -> None:
    """Acquire the browser, run COMMAND [ARGS...], always release."""
    out = get_output_context()
    args = list(ctx.args)

    try:
        orchestrator = RunOrchestrator(get_config())
        result = orchestrator.run(command, args, timeout_seconds=timeout)
    except BrowserLockError as e:
        out.error(str(e), label=e.label)
        raise typer.Exit(e.exit_code) from None
    except OrchestratorInterrupted as e:
        out.error(str(e), label="INTERRUPTED")
        raise typer.Exit(128 + e.signum) from None
    except KeyboardInterrupt:
        out.error("Interrupted by SIGINT", label="INTERRUPTED")
        raise typer.Exit(128 + signal.SIGINT) from None

    data = result.model_dump(mode="json")
    if result.exit_code == 0:
        out.success(f"Script finished in {result.duration_seconds:.1f}s", data=data)
    else:
        effective_timeout = orchestrator.config.run.default_timeout if timeout is None else timeout
        message = {
            "TIMEOUT": f"Script timed out after {effective_timeout}s and was terminated",
            "COMMAND_NOT_FOUND": f"Command not found: {command}",
        }.get(result.classification, f"Script exited with code {result.exit_code}")
        out.error(message, label=result.classification, **data)
    raise typer.Exit(result.exit_code)
