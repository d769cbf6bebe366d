from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Mapping, Optional, Sequence

from ...core.config import HoleBotConfig, HoleSurfaces
from ...core.exceptions import ConfigError, StoreError, TransportError
from ...core.logging_utils import log_event
from ...core.sqlite_store import HoleStateStore
from ...holes import strings
from ...holes.router import ReplyRouter
from ...holes.sessions import UserSessionManager
from ...holes.threads import ThreadRegistry
from .client import TelegramBotClient
from .constants import BOT_COMMANDS
from .dispatcher import UpdateDispatcher
from .errors import TelegramAPIError
from .relay import TelegramContentRelay
from .startup import StartupStep, run_startup
from .updates import CallbackEvent, MessageEvent, UpdateEvent, parse_update

POLL_BACKOFF_INITIAL_SECONDS = 1.0
POLL_BACKOFF_MAX_SECONDS = 60.0


async def resolve_surfaces(bot: TelegramBotClient, channel: str) -> HoleSurfaces:
    """Look up the public channel and its linked discussion group."""
    username = channel.strip().lstrip("@")
    try:
        chat = await bot.get_chat(f"@{username}")
    except TelegramAPIError as exc:
        raise ConfigError(f"Cannot access channel @{username}: {exc}") from exc
    if chat.get("type") != "channel":
        raise ConfigError(f"@{username} is not a channel")
    channel_id = chat.get("id")
    resolved_username = chat.get("username")
    if not isinstance(channel_id, int):
        raise ConfigError(f"@{username} has no chat id")
    if not isinstance(resolved_username, str) or not resolved_username:
        raise ConfigError(f"@{username} must be a public channel")
    discussion_id = chat.get("linked_chat_id")
    if not isinstance(discussion_id, int):
        raise ConfigError(f"@{username} has no linked discussion group")
    try:
        discussion = await bot.get_chat(discussion_id)
    except TelegramAPIError as exc:
        raise ConfigError(
            f"Cannot access discussion group {discussion_id}: {exc}"
        ) from exc
    if discussion.get("type") != "supergroup":
        raise ConfigError(f"Discussion chat {discussion_id} is not a supergroup")
    return HoleSurfaces(
        channel_id=channel_id,
        channel_username=resolved_username,
        discussion_id=discussion_id,
    )


async def register_bot_commands(
    bot: TelegramBotClient,
    commands: Sequence[tuple[str, str]] = BOT_COMMANDS,
) -> None:
    await bot.set_my_commands(commands)


class HoleBotService:
    """Long-polling bot: fetches updates and feeds them to the reply router."""

    def __init__(
        self,
        config: HoleBotConfig,
        *,
        logger: logging.Logger,
        bot: Optional[TelegramBotClient] = None,
        state_store: Optional[HoleStateStore] = None,
        dispatcher: Optional[UpdateDispatcher] = None,
    ) -> None:
        self._config = config
        self._logger = logger
        self._bot = bot if bot is not None else TelegramBotClient(config.bot_token)
        self._owns_bot = bot is None
        self._store = (
            state_store
            if state_store is not None
            else HoleStateStore(config.state_file)
        )
        self._owns_store = state_store is None
        self._dispatcher = dispatcher or UpdateDispatcher(logger=logger)
        self._relay = TelegramContentRelay(self._bot)
        self._surfaces: Optional[HoleSurfaces] = None
        self._router: Optional[ReplyRouter] = None
        self._bot_username: Optional[str] = None
        self._offset: Optional[int] = None

    @property
    def surfaces(self) -> Optional[HoleSurfaces]:
        return self._surfaces

    async def start(self) -> None:
        await run_startup(
            (
                StartupStep("initialize_store", self._store.initialize, StoreError),
                StartupStep("identify_bot", self._identify_bot),
                StartupStep("resolve_surfaces", self._resolve_surfaces, ConfigError),
                StartupStep(
                    "register_commands", lambda: register_bot_commands(self._bot)
                ),
            ),
            logger=self._logger,
        )
        surfaces = self._surfaces
        assert surfaces is not None
        self._router = ReplyRouter(
            sessions=UserSessionManager(self._store.sessions),
            threads=ThreadRegistry(self._store.holes, surfaces, logger=self._logger),
            relay=self._relay,
            surfaces=surfaces,
            auth_secret=self._config.auth_secret,
            logger=self._logger,
        )
        log_event(
            self._logger,
            logging.INFO,
            "telehole.bot.started",
            channel=surfaces.channel_username,
            channel_id=surfaces.channel_id,
            discussion_id=surfaces.discussion_id,
            state_file=str(self._config.state_file),
        )

    async def run_forever(self) -> None:
        try:
            await self.start()
            delay = POLL_BACKOFF_INITIAL_SECONDS
            while True:
                try:
                    await self.poll_once()
                except TelegramAPIError as exc:
                    wait = float(exc.retry_after or delay)
                    log_event(
                        self._logger,
                        logging.WARNING,
                        "telehole.poll.failed",
                        retry_in=wait,
                        exc=exc,
                    )
                    await asyncio.sleep(wait)
                    delay = min(delay * 2, POLL_BACKOFF_MAX_SECONDS)
                else:
                    delay = POLL_BACKOFF_INITIAL_SECONDS
        finally:
            with contextlib.suppress(Exception):
                await asyncio.wait_for(self._dispatcher.wait_idle(), timeout=10)
            await self.shutdown()

    async def poll_once(self) -> int:
        updates = await self._bot.get_updates(
            offset=self._offset, timeout=self._config.poll_timeout_seconds
        )
        await self.dispatch_updates(updates)
        return len(updates)

    async def dispatch_updates(self, updates: Sequence[Mapping[str, Any]]) -> None:
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = max(self._offset or 0, update_id + 1)
            event = parse_update(update, bot_username=self._bot_username)
            if event is None:
                continue
            await self._dispatcher.dispatch(event, self.handle_event)

    async def wait_idle(self) -> None:
        await self._dispatcher.wait_idle()

    async def handle_event(self, event: UpdateEvent) -> None:
        router = self._router
        surfaces = self._surfaces
        if router is None or surfaces is None:
            raise RuntimeError("HoleBotService.start() has not completed")
        if isinstance(event, CallbackEvent):
            await router.handle_callback(
                user_id=event.from_user_id,
                callback_id=event.callback_id,
                data=event.data,
            )
            return
        if self._is_mirror(event, surfaces):
            assert event.forward_from_message_id is not None
            await router.handle_mirror(
                public_id=event.forward_from_message_id,
                internal_id=event.message_id,
            )
            return
        if not event.is_private:
            if event.command is not None:
                await router.handle_group_command(
                    chat_id=event.chat_id,
                    name=event.command.name,
                    message_id=event.message_id,
                )
            return
        if event.from_user_id is None:
            return
        try:
            await self._route_private(router, event)
        except Exception as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.bot.private.unexpected_error",
                user_id=event.from_user_id,
                update_id=event.update_id,
                exc=exc,
            )
            with contextlib.suppress(TransportError):
                await self._bot.send_message(event.chat_id, strings.GENERIC_ERROR)

    async def _route_private(self, router: ReplyRouter, event: MessageEvent) -> None:
        assert event.from_user_id is not None
        if event.command is not None:
            handled = await router.handle_command(
                user_id=event.from_user_id,
                chat_id=event.chat_id,
                name=event.command.name,
                args=event.command.args,
                message_id=event.message_id,
            )
            if handled:
                return
        await router.handle_content(
            user_id=event.from_user_id,
            chat_id=event.chat_id,
            message_id=event.message_id,
            message=event.message,
        )

    async def shutdown(self) -> None:
        await self._dispatcher.close()
        if self._owns_bot:
            with contextlib.suppress(Exception):
                await self._bot.close()
        if self._owns_store:
            with contextlib.suppress(Exception):
                await self._store.close()

    async def _identify_bot(self) -> None:
        me = await self._bot.get_me()
        username = me.get("username")
        self._bot_username = username if isinstance(username, str) else None

    async def _resolve_surfaces(self) -> None:
        self._surfaces = await resolve_surfaces(self._bot, self._config.channel)

    @staticmethod
    def _is_mirror(event: MessageEvent, surfaces: HoleSurfaces) -> bool:
        return (
            event.chat_id == surfaces.discussion_id
            and event.is_automatic_forward
            and event.sender_chat_id == surfaces.channel_id
            and event.forward_from_message_id is not None
        )
