"""Typer CLI for the photo echo bot."""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog
import typer
from rich.console import Console
from rich.table import Table

from photo_echo.config.loader import load_app_config
from photo_echo.config.models import AppConfig
from photo_echo.errors import GatewayError, StartupError
from photo_echo.gateway.client import TelegramGateway
from photo_echo.observability.logging import configure_logging

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="photo-echo", help="Telegram bot that echoes photos back")

_CONFIG_OPTION = typer.Option(
    None, "--config", "-c", help="YAML config merged over built-in defaults"
)


def _load(config_path: str | None, *, require_token: bool = True) -> AppConfig:
    path = Path(config_path) if config_path else None
    if path is not None and not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return load_app_config(path, require_token=require_token)
    except StartupError as exc:
        console.print(f"[red]Startup error:[/red] {exc}")
        raise typer.Exit(1) from exc


@app.command()
def validate(config_path: str | None = _CONFIG_OPTION) -> None:
    """Validate configuration and print a summary."""
    config = _load(config_path, require_token=False)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    token = config.gateway.token
    table.add_row("api_url", config.gateway.api_url)
    table.add_row("token", "[green]set[/green]" if token else "[red]missing[/red]")
    table.add_row("wait_seconds", str(config.poller.wait_seconds))
    table.add_row(
        "poll_request_timeout",
        f"{config.gateway.poll_request_timeout_seconds}s",
    )
    table.add_row("request_timeout", f"{config.gateway.request_timeout_seconds}s")
    table.add_row("max_concurrent_events", str(config.poller.max_concurrent_events))
    backoff = config.poller.backoff
    table.add_row(
        "poll_backoff",
        f"{backoff.initial_wait_seconds}s → {backoff.max_wait_seconds}s "
        f"(x{backoff.multiplier}{', jitter' if backoff.jitter else ''})",
    )
    table.add_row(
        "health",
        f"port {config.health_port}" if config.health_enabled else "disabled",
    )
    console.print(table)

    if token is None:
        console.print("[red]Invalid:[/red] TELEGRAM_TOKEN is not set")
        raise typer.Exit(1)
    console.print("[green]Valid[/green]")


@app.command()
def check(config_path: str | None = _CONFIG_OPTION) -> None:
    """Verify the bot token by calling getMe."""
    config = _load(config_path)
    configure_logging(config.logging)

    async def _check() -> dict[str, object]:
        async with TelegramGateway(config.gateway) as gateway:
            return await gateway.get_me()

    try:
        me = asyncio.run(_check())
    except GatewayError as exc:
        console.print(f"[red]Check failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(
        f"[green]OK[/green] — @{me.get('username', '?')} (id={me.get('id', '?')})"
    )


@app.command()
def run(config_path: str | None = _CONFIG_OPTION) -> None:
    """Start long polling and echo every received photo."""
    config = _load(config_path)
    configure_logging(config.logging)

    from photo_echo.pipeline.runner import EchoBot

    try:
        bot = EchoBot(config)
    except StartupError as exc:
        console.print(f"[red]Startup error:[/red] {exc}")
        raise typer.Exit(1) from exc

    console.print(
        f"[yellow]Polling[/yellow] {config.gateway.api_url} "
        f"(wait={config.poller.wait_seconds}s)"
    )
    try:
        bot.start()
    except StartupError as exc:
        console.print(f"[red]Startup error:[/red] {exc}")
        raise typer.Exit(1) from exc
    except KeyboardInterrupt:
        bot.stop()


def main() -> None:
    app()


if __name__ == "__main__":
    main()
