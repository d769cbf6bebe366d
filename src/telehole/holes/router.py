"""Conversation state machine driving posts and pseudonymous replies.

Each inbound event is handled on its own: the router loads the user's
session, advances it by one step and commits the new state before returning.
Flows never hold a lock across steps; every content step ends in IDLE whether
the relay succeeded or not.
"""

from __future__ import annotations

import json
import logging
import re
import secrets
from typing import Any, Awaitable, Callable, Mapping, Optional

from ..core.config import HoleSurfaces
from ..core.exceptions import (
    CallbackDecodeError,
    HoleError,
    SessionNotFoundError,
    StoreError,
    ThreadBindingError,
    TransportError,
    ValidationError,
)
from ..core.logging_utils import log_event
from . import strings
from .callbacks import (
    NotifyToken,
    ReplyRequestToken,
    decode_callback_token,
    fit_notify_text,
)
from .content import ForwardedPost, TextContent, classify_message, require_supported
from .relay import Affordance, ContentRelay, SendOptions
from .sessions import SessionState, UserSession, UserSessionManager
from .threads import ThreadRegistry, render_pseudonym

_TARGET_RE = re.compile(r"[0-9]{1,19}")

COMMAND_START = "start"
COMMAND_HELP = "help"
COMMAND_CANCEL = "cancel"
COMMAND_POST = "post"
COMMAND_REPLY = "reply"
COMMAND_DEBUG = "debug"
COMMAND_AUTH = "auth"

ContentHandler = Callable[
    [UserSession, int, Mapping[str, Any]],
    Awaitable[None],
]


class ReplyRouter:
    def __init__(
        self,
        *,
        sessions: UserSessionManager,
        threads: ThreadRegistry,
        relay: ContentRelay,
        surfaces: HoleSurfaces,
        auth_secret: Optional[str] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._sessions = sessions
        self._threads = threads
        self._relay = relay
        self._surfaces = surfaces
        self._auth_secret = auth_secret
        self._logger = logger or logging.getLogger(__name__)
        self._content_handlers: dict[SessionState, ContentHandler] = {
            SessionState.IDLE: self._on_idle_content,
            SessionState.AWAIT_POST: self._on_post_content,
            SessionState.AWAIT_REPLY_TARGET: self._on_reply_target_content,
            SessionState.AWAIT_REPLY_BODY: self._on_reply_body_content,
        }

    # ---- commands ---------------------------------------------------------

    async def handle_command(
        self,
        *,
        user_id: int,
        chat_id: int,
        name: str,
        args: str = "",
        message_id: Optional[int] = None,
    ) -> bool:
        """Handle a private-chat command; returns False for unknown commands."""
        log_event(
            self._logger,
            logging.INFO,
            "telehole.router.command",
            user_id=user_id,
            command=name,
        )
        try:
            if name == COMMAND_START:
                await self._sessions.init(user_id, chat_id)
                await self._say(
                    chat_id,
                    strings.WELCOME,
                    entities=(_entity("bold", strings.WELCOME, "TeleHole Bot"),),
                )
            elif name == COMMAND_HELP:
                await self._say(chat_id, strings.HELP)
            elif name == COMMAND_CANCEL:
                await self._sessions.reset(user_id)
                await self._say(chat_id, strings.CANCELED)
            elif name == COMMAND_POST:
                await self._sessions.transition(
                    user_id,
                    SessionState.AWAIT_POST,
                    reply_thread_id=None,
                    reply_anchor_id=None,
                )
                await self._say(chat_id, strings.POST_PROMPT)
            elif name == COMMAND_REPLY:
                await self._sessions.transition(
                    user_id,
                    SessionState.AWAIT_REPLY_TARGET,
                    reply_thread_id=None,
                    reply_anchor_id=None,
                )
                await self._say(chat_id, strings.REPLY_TARGET_PROMPT)
            elif name == COMMAND_DEBUG:
                await self._debug(user_id, chat_id)
            elif name == COMMAND_AUTH:
                await self._authorize(user_id, chat_id, args, message_id)
            else:
                return False
        except SessionNotFoundError as exc:
            await self._say(chat_id, exc.describe())
        except StoreError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.router.command.store_failed",
                user_id=user_id,
                command=name,
                exc=exc,
            )
            await self._say(chat_id, strings.GENERIC_ERROR)
        return True

    async def handle_group_command(
        self, *, chat_id: int, name: str, message_id: Optional[int] = None
    ) -> bool:
        """Commands outside private chats only get pointed at the private chat."""
        if name != COMMAND_START:
            return False
        await self._say(chat_id, strings.PRIVATE_ONLY, reply_to=message_id)
        return True

    async def _debug(self, user_id: int, chat_id: int) -> None:
        session = await self._sessions.get(user_id)
        if not session.authorized:
            log_event(
                self._logger,
                logging.INFO,
                "telehole.router.debug.denied",
                user_id=user_id,
            )
            return
        dump = json.dumps(session.to_dict(), indent=2, ensure_ascii=True)
        await self._say(
            chat_id,
            dump,
            entities=({"type": "pre", "offset": 0, "length": _utf16_len(dump)},),
        )

    async def _authorize(
        self,
        user_id: int,
        chat_id: int,
        secret: str,
        message_id: Optional[int],
    ) -> None:
        if not self._auth_secret:
            await self._say(chat_id, strings.AUTH_DISABLED)
            return
        await self._sessions.get(user_id)
        if not secrets.compare_digest(
            secret.strip().encode("utf-8"), self._auth_secret.encode("utf-8")
        ):
            log_event(
                self._logger,
                logging.WARNING,
                "telehole.router.auth.rejected",
                user_id=user_id,
            )
            await self._say(chat_id, strings.AUTH_FAILED, reply_to=message_id)
            return
        await self._sessions.authorize(user_id)
        log_event(
            self._logger,
            logging.INFO,
            "telehole.router.auth.granted",
            user_id=user_id,
        )
        await self._say(chat_id, strings.AUTH_OK, reply_to=message_id)

    # ---- content messages -------------------------------------------------

    async def handle_content(
        self,
        *,
        user_id: int,
        chat_id: int,
        message_id: int,
        message: Mapping[str, Any],
    ) -> None:
        try:
            session = await self._sessions.get(user_id)
        except SessionNotFoundError as exc:
            await self._say(chat_id, exc.describe())
            return
        except StoreError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.router.session.load_failed",
                user_id=user_id,
                exc=exc,
            )
            await self._say(chat_id, strings.GENERIC_ERROR)
            return
        handler = self._content_handlers[session.state]
        await handler(session, message_id, message)

    async def _on_idle_content(
        self, session: UserSession, message_id: int, message: Mapping[str, Any]
    ) -> None:
        await self._say(session.chat_id, strings.IDLE_HINT, reply_to=message_id)

    async def _on_post_content(
        self, session: UserSession, message_id: int, message: Mapping[str, Any]
    ) -> None:
        try:
            content = require_supported(classify_message(message))
            public_id = await self._relay.send(self._surfaces.channel_id, content)
            log_event(
                self._logger,
                logging.INFO,
                "telehole.router.post.relayed",
                user_id=session.user_id,
                public_id=public_id,
                kind=type(content).__name__,
            )
            await self._threads.create_thread(session.user_id, public_id)
            await self._say(
                session.chat_id,
                strings.hole_created(self._surfaces.hole_link(public_id)),
                reply_to=message_id,
            )
        except HoleError as exc:
            await self._report(session, "post", exc)
        await self._return_to_idle(session.user_id)

    async def _on_reply_target_content(
        self, session: UserSession, message_id: int, message: Mapping[str, Any]
    ) -> None:
        try:
            text = message.get("text")
            target = text.strip() if isinstance(text, str) else ""
            if not _TARGET_RE.fullmatch(target):
                raise ValidationError(
                    f"reply target is not numeric: {target!r}",
                    user_message=strings.BAD_TARGET,
                )
            internal_id = int(target)
            await self._threads.resolve_by_internal_id(internal_id)
            await self._sessions.transition(
                session.user_id,
                SessionState.AWAIT_REPLY_BODY,
                reply_thread_id=internal_id,
                reply_anchor_id=0,
            )
        except HoleError as exc:
            await self._report(session, "reply_target", exc)
            await self._return_to_idle(session.user_id)
            return
        await self._say(session.chat_id, strings.REPLY_BODY_PROMPT)

    async def _on_reply_body_content(
        self, session: UserSession, message_id: int, message: Mapping[str, Any]
    ) -> None:
        try:
            await self._relay_reply(session, message_id, message)
        except HoleError as exc:
            await self._report(session, "reply", exc)
        await self._return_to_idle(session.user_id)

    async def _relay_reply(
        self, session: UserSession, message_id: int, message: Mapping[str, Any]
    ) -> None:
        internal_id = session.reply_thread_id
        if not internal_id:
            raise ValidationError(
                "reply body without a target hole",
                user_message=strings.MISSING_REPLY_TARGET,
            )
        thread = await self._threads.resolve_by_internal_id(internal_id)
        content = require_supported(classify_message(message))
        if isinstance(content, ForwardedPost):
            raise ValidationError(
                "forwarded content cannot be a reply",
                user_message=strings.NO_OWN_IDEA,
            )
        ordinal = await self._threads.register_participant(
            thread.thread_id, session.user_id
        )
        label = render_pseudonym(ordinal)
        discussion_id = self._surfaces.discussion_id
        sent_id = await self._relay.send(
            discussion_id,
            content,
            SendOptions(
                reply_target_id=session.reply_anchor_id or internal_id,
                pseudonym_label=label,
                affordance=Affordance(
                    label=f"From {label}",
                    token=NotifyToken(fit_notify_text(strings.sent_from(label))),
                ),
            ),
        )
        log_event(
            self._logger,
            logging.INFO,
            "telehole.router.reply.relayed",
            public_id=thread.public_id,
            internal_id=internal_id,
            anchor_id=session.reply_anchor_id or 0,
            ordinal=ordinal,
            message_id=sent_id,
        )
        try:
            await self._relay.attach_affordance(
                discussion_id,
                sent_id,
                Affordance(
                    label=f"Reply to {label}",
                    token=ReplyRequestToken(thread_id=internal_id, anchor_id=sent_id),
                ),
            )
        except TransportError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telehole.router.reply.affordance_failed",
                internal_id=internal_id,
                message_id=sent_id,
                exc=exc,
            )
        await self._say(
            session.chat_id,
            strings.reply_done(self._threads.link(thread)),
            reply_to=message_id,
        )

    # ---- affordance activations -------------------------------------------

    async def handle_callback(
        self, *, user_id: int, callback_id: str, data: Optional[str]
    ) -> None:
        try:
            token = decode_callback_token(data)
        except CallbackDecodeError as exc:
            log_event(
                self._logger,
                logging.DEBUG,
                "telehole.router.callback.ignored",
                user_id=user_id,
                exc=exc,
            )
            return

        if isinstance(token, NotifyToken):
            await self._acknowledge(callback_id, token.text)
            return

        try:
            session = await self._sessions.transition(
                user_id,
                SessionState.AWAIT_REPLY_BODY,
                reply_thread_id=token.thread_id,
                reply_anchor_id=token.anchor_id,
            )
        except SessionNotFoundError as exc:
            await self._acknowledge(callback_id, exc.describe())
            return
        except StoreError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.router.callback.store_failed",
                user_id=user_id,
                exc=exc,
            )
            await self._acknowledge(callback_id, strings.GENERIC_ERROR)
            return
        log_event(
            self._logger,
            logging.INFO,
            "telehole.router.callback.reply_requested",
            user_id=user_id,
            internal_id=token.thread_id,
            anchor_id=token.anchor_id,
        )
        await self._say(session.chat_id, strings.replying_to(token.thread_id))
        await self._acknowledge(callback_id, strings.GOTO_BOT)

    # ---- automatic mirroring ----------------------------------------------

    async def handle_mirror(self, *, public_id: int, internal_id: int) -> None:
        try:
            _thread, created = await self._threads.bind_internal_id(
                public_id, internal_id
            )
        except ThreadBindingError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.router.mirror.bind_conflict",
                public_id=public_id,
                internal_id=internal_id,
                exc=exc,
            )
            return
        if not created:
            log_event(
                self._logger,
                logging.DEBUG,
                "telehole.router.mirror.repeated",
                public_id=public_id,
                internal_id=internal_id,
            )
            return
        log_event(
            self._logger,
            logging.INFO,
            "telehole.router.mirror.bound",
            public_id=public_id,
            internal_id=internal_id,
        )
        notice = strings.discovery_notice(internal_id)
        try:
            await self._relay.send(
                self._surfaces.discussion_id,
                TextContent(
                    text=notice,
                    entities=(_entity("code", notice, str(internal_id)),),
                ),
                SendOptions(
                    reply_target_id=internal_id,
                    affordance=Affordance(
                        label=strings.REPLY_TO_HOLE,
                        token=ReplyRequestToken(thread_id=internal_id, anchor_id=0),
                    ),
                ),
            )
        except TransportError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telehole.router.mirror.notice_failed",
                internal_id=internal_id,
                exc=exc,
            )

    # ---- helpers ----------------------------------------------------------

    async def _report(self, session: UserSession, flow: str, exc: HoleError) -> None:
        log_event(
            self._logger,
            logging.WARNING,
            f"telehole.router.{flow}.failed",
            user_id=session.user_id,
            exc=exc,
        )
        text = strings.GENERIC_ERROR if isinstance(exc, StoreError) else exc.describe()
        await self._say(session.chat_id, text)

    async def _return_to_idle(self, user_id: int) -> None:
        try:
            await self._sessions.reset(user_id)
        except HoleError as exc:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.router.session.reset_failed",
                user_id=user_id,
                exc=exc,
            )

    async def _say(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to: Optional[int] = None,
        entities: tuple[dict[str, Any], ...] = (),
    ) -> None:
        try:
            await self._relay.send(
                chat_id,
                TextContent(text=text, entities=entities),
                SendOptions(reply_target_id=reply_to),
            )
        except TransportError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telehole.router.say.failed",
                chat_id=chat_id,
                exc=exc,
            )

    async def _acknowledge(self, callback_id: str, text: Optional[str]) -> None:
        try:
            await self._relay.acknowledge(callback_id, text)
        except TransportError as exc:
            log_event(
                self._logger,
                logging.WARNING,
                "telehole.router.ack.failed",
                callback_id=callback_id,
                exc=exc,
            )


def _utf16_len(text: str) -> int:
    return len(text.encode("utf-16-le")) // 2


def _entity(kind: str, text: str, fragment: str) -> dict[str, Any]:
    start = text.index(fragment)
    return {
        "type": kind,
        "offset": _utf16_len(text[:start]),
        "length": _utf16_len(fragment),
    }
