"""Per-user conversation state.

Sessions are keyed by the user's platform id. Every call maps onto a single
atomic store operation (``get`` or ``upsert``); callers that need ordering
between several events of the same user serialize them before they get here
(see ``integrations.telegram.dispatcher``).
"""

from __future__ import annotations

import enum
from dataclasses import asdict, dataclass
from typing import Any, Optional

from ..core.exceptions import SessionNotFoundError
from ..core.store import KeyValueStore


class SessionState(str, enum.Enum):
    IDLE = "idle"
    AWAIT_POST = "await_post"
    AWAIT_REPLY_TARGET = "await_reply_target"
    AWAIT_REPLY_BODY = "await_reply_body"


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


@dataclass(frozen=True)
class UserSession:
    user_id: int
    chat_id: int
    state: SessionState = SessionState.IDLE
    reply_thread_id: Optional[int] = None
    reply_anchor_id: Optional[int] = None
    authorized: bool = False

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "UserSession":
        state_raw = record.get("state", SessionState.IDLE.value)
        try:
            state = SessionState(state_raw)
        except ValueError:
            state = SessionState.IDLE
        return cls(
            user_id=int(record["user_id"]),
            chat_id=int(record.get("chat_id") or record["user_id"]),
            state=state,
            reply_thread_id=_optional_int(record.get("reply_thread_id")),
            reply_anchor_id=_optional_int(record.get("reply_anchor_id")),
            authorized=bool(record.get("authorized", False)),
        )


def session_key(user_id: int) -> str:
    return f"user:{user_id}"


class UserSessionManager:
    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def init(self, user_id: int, chat_id: int) -> UserSession:
        """Create the session, or reset an existing one back to IDLE."""
        record = await self._store.upsert(
            session_key(user_id),
            {
                "user_id": user_id,
                "chat_id": chat_id,
                "state": SessionState.IDLE.value,
                "reply_thread_id": None,
                "reply_anchor_id": None,
            },
        )
        return UserSession.from_record(record)

    async def get(self, user_id: int) -> UserSession:
        record = await self._store.get(session_key(user_id))
        if record is None:
            raise SessionNotFoundError(user_id)
        return UserSession.from_record(record)

    async def transition(
        self,
        user_id: int,
        state: SessionState,
        *,
        reply_thread_id: Optional[int] = UNSET,
        reply_anchor_id: Optional[int] = UNSET,
    ) -> UserSession:
        """Set ``state`` plus any given reply fields in one write.

        Legality of the transition is the caller's concern. Raises
        ``SessionNotFoundError`` for users that never ran /start.
        """
        await self.get(user_id)
        fields: dict[str, Any] = {"state": SessionState(state).value}
        if reply_thread_id is not UNSET:
            fields["reply_thread_id"] = reply_thread_id
        if reply_anchor_id is not UNSET:
            fields["reply_anchor_id"] = reply_anchor_id
        record = await self._store.upsert(session_key(user_id), fields)
        return UserSession.from_record(record)

    async def reset(self, user_id: int) -> UserSession:
        return await self.transition(
            user_id,
            SessionState.IDLE,
            reply_thread_id=None,
            reply_anchor_id=None,
        )

    async def authorize(self, user_id: int) -> UserSession:
        await self.get(user_id)
        record = await self._store.upsert(session_key(user_id), {"authorized": True})
        return UserSession.from_record(record)


def _optional_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
