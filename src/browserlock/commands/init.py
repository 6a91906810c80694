"""Init command implementation."""

from pathlib import Path

import typer

from ..config import default_config_path, write_config_template
from ..output import get_output_context


def init(
    path: Path | None = typer.Option(None, "--path", help="Where to write config.toml"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config"),
) -> None:
    """Write a config.toml template with the defaults."""
    ctx = get_output_context()
    config_path = path or default_config_path()

    if config_path.exists() and not force:
        ctx.error(f"Config already exists: {config_path}. Use --force to overwrite.")
        raise typer.Exit(1)

    write_config_template(config_path)
    ctx.success(f"Created config template: {config_path}", data={"path": str(config_path)})
