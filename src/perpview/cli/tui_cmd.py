"""Watch command - side-by-side TUI."""

import typer

from perpview.tui.app import run_tui

app = typer.Typer(help="Launch the side-by-side TUI")


@app.callback(invoke_without_command=True)
def watch(
    ctx: typer.Context,
    symbol: str | None = typer.Option(None, "--symbol", "-s", help="Initial asset (default from config)"),
) -> None:
    """Live books, summaries and leverage for both venues. Press q to quit."""
    if ctx.invoked_subcommand is not None:
        return
    settings = ctx.obj["settings"]
    run_tui(settings, symbol or settings.default_symbol)
