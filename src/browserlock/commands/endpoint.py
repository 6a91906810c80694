"""endpoint command: print the shared browser's CDP URL."""

import typer

from ..errors import BrowserLockError
from ..output import get_output_context
from ..services import discover_cdp_url


def endpoint() -> None:
    """Print the CDP URL automation scripts should connect to."""
    ctx = get_output_context()
    try:
        url = discover_cdp_url()
    except BrowserLockError as e:
        ctx.error(str(e), label=e.label)
        raise typer.Exit(e.exit_code) from None

    if ctx.json_mode:
        ctx.print_json({"cdp_url": url})
    else:
        # Plain print so scripts can capture it with $(browser-lock endpoint)
        print(url)
