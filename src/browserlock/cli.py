"""browser-lock CLI: exclusive access to a shared CDP browser."""

from pathlib import Path

import typer
from rich.console import Console

from browserlock import __version__

from .commands import acquire, endpoint, init, release, run, status
from .config import set_config_path
from .logging import configure_logging
from .output import OutputContext, set_output_context


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"browser-lock {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="browser-lock",
    help="Mutex for a shared remote-debuggable browser",
    no_args_is_help=True,
)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase verbosity (-v, -vv)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-error output",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in JSON format for automation",
    ),
    no_color: bool = typer.Option(
        False,
        "--no-color",
        help="Disable colored output",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        envvar="BROWSER_LOCK_CONFIG",
        help="Path to config.toml",
    ),
) -> None:
    """browser-lock - time-share one CDP browser between its owner and scripts."""
    configure_logging(verbosity=verbose, quiet=quiet, no_color=no_color)
    console = Console(no_color=no_color, highlight=False)
    set_output_context(OutputContext(console=console, json_mode=json_output))
    set_config_path(config)


app.command()(acquire)
app.command()(release)
app.command()(status)
app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)(run)
app.command()(endpoint)
app.command()(init)


if __name__ == "__main__":
    app()
