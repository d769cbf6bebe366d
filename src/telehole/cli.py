from __future__ import annotations

import asyncio
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .core.config import load_config
from .core.exceptions import ConfigError, StoreError, TransportError
from .core.logging_utils import setup_logger
from .core.sqlite_store import HoleStateStore
from .integrations.telegram.client import TelegramBotClient
from .integrations.telegram.constants import BOT_COMMANDS
from .integrations.telegram.service import (
    HoleBotService,
    register_bot_commands,
    resolve_surfaces,
)

app = typer.Typer(add_completion=False, help="Anonymous channel posts and replies.")

_PATH_OPTION = typer.Option(None, "--path", help="Directory holding telehole.yml")
_CONFIG_OPTION = typer.Option(None, "--config", help="Explicit config file path")


def raise_exit(message: str, *, cause: Optional[BaseException] = None) -> NoReturn:
    typer.echo(message, err=True)
    if cause is not None:
        raise typer.Exit(code=1) from cause
    raise typer.Exit(code=1)


def _load(path: Optional[Path], config_path: Optional[Path]):
    try:
        return load_config((path or Path.cwd()).resolve(), config_path)
    except ConfigError as exc:
        raise_exit(str(exc), cause=exc)


@app.command("start")
def start(
    path: Optional[Path] = _PATH_OPTION,
    config_path: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Run the bot with long polling until interrupted."""
    config = _load(path, config_path)
    logger = setup_logger("telehole", config.log)
    service = HoleBotService(config, logger=logger)
    try:
        asyncio.run(service.run_forever())
    except (ConfigError, StoreError, TransportError) as exc:
        raise_exit(exc.describe(), cause=exc)
    except KeyboardInterrupt:
        typer.echo("TeleHole bot stopped.")


@app.command("register-commands")
def register_commands(
    path: Optional[Path] = _PATH_OPTION,
    config_path: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Publish the bot's command menu."""
    config = _load(path, config_path)

    async def _run() -> None:
        async with TelegramBotClient(config.bot_token) as bot:
            await register_bot_commands(bot)

    try:
        asyncio.run(_run())
    except TransportError as exc:
        raise_exit(exc.describe(), cause=exc)
    typer.echo(f"Registered {len(BOT_COMMANDS)} commands.")


@app.command("check")
def check(
    path: Optional[Path] = _PATH_OPTION,
    config_path: Optional[Path] = _CONFIG_OPTION,
) -> None:
    """Verify the state store, the token, the channel and its discussion group."""
    config = _load(path, config_path)

    async def _run():
        store = HoleStateStore(config.state_file)
        try:
            await store.initialize()
            holes = await store.holes.count()
        finally:
            await store.close()
        async with TelegramBotClient(config.bot_token) as bot:
            me = await bot.get_me()
            surfaces = await resolve_surfaces(bot, config.channel)
        return me, surfaces, holes

    try:
        me, surfaces, holes = asyncio.run(_run())
    except (ConfigError, StoreError, TransportError) as exc:
        raise_exit(exc.describe(), cause=exc)
    typer.echo(f"bot: @{me.get('username', '?')}")
    typer.echo(f"channel: @{surfaces.channel_username} ({surfaces.channel_id})")
    typer.echo(f"discussion: {surfaces.discussion_id}")
    typer.echo(f"state file: {config.state_file} ({holes} records)")


def main() -> None:
    """Entrypoint for CLI execution."""
    app()
