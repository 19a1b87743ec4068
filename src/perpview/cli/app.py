"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from perpview.config import get_settings
from perpview.config.settings import configure_logging

app = typer.Typer(
    name="perpview",
    help="perpview - dYdX and Hyperliquid perp markets side by side.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. testnet) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    settings = get_settings(profile, config_dir)
    configure_logging(settings)
    ctx.ensure_object(dict).update(settings=settings, config_dir=config_dir, profile=profile)


# Subcommands registered from other modules
from perpview.cli import account, markets, trade, tui_cmd  # noqa: E402

app.add_typer(markets.app, name="markets")
app.add_typer(trade.app, name="trade")
app.add_typer(account.app, name="account")
app.add_typer(tui_cmd.app, name="watch")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
