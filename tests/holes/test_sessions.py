from __future__ import annotations

import pytest

from telehole.core.exceptions import SessionNotFoundError
from telehole.core.store import MemoryKeyValueStore
from telehole.holes.sessions import (
    SessionState,
    UserSession,
    UserSessionManager,
    session_key,
)


@pytest.mark.anyio
async def test_init_creates_idle_session() -> None:
    manager = UserSessionManager(MemoryKeyValueStore())

    session = await manager.init(7, 70)

    assert session == UserSession(user_id=7, chat_id=70)
    assert await manager.get(7) == session


@pytest.mark.anyio
async def test_get_unknown_user_raises() -> None:
    manager = UserSessionManager(MemoryKeyValueStore())
    with pytest.raises(SessionNotFoundError) as excinfo:
        await manager.get(1)
    assert excinfo.value.describe() == "Please run /start command first"


@pytest.mark.anyio
async def test_transition_requires_existing_session() -> None:
    store = MemoryKeyValueStore()
    manager = UserSessionManager(store)
    with pytest.raises(SessionNotFoundError):
        await manager.transition(1, SessionState.AWAIT_POST)
    assert len(store) == 0


@pytest.mark.anyio
async def test_transition_updates_only_given_fields() -> None:
    manager = UserSessionManager(MemoryKeyValueStore())
    await manager.init(7, 70)

    session = await manager.transition(
        7, SessionState.AWAIT_REPLY_BODY, reply_thread_id=55, reply_anchor_id=9
    )
    assert session.state is SessionState.AWAIT_REPLY_BODY
    assert (session.reply_thread_id, session.reply_anchor_id) == (55, 9)

    session = await manager.transition(7, SessionState.AWAIT_REPLY_TARGET)
    assert session.state is SessionState.AWAIT_REPLY_TARGET
    assert session.reply_thread_id == 55

    session = await manager.reset(7)
    assert session.state is SessionState.IDLE
    assert session.reply_thread_id is None
    assert session.reply_anchor_id is None


@pytest.mark.anyio
async def test_restart_resets_state_but_keeps_authorization() -> None:
    manager = UserSessionManager(MemoryKeyValueStore())
    await manager.init(7, 70)
    await manager.authorize(7)
    await manager.transition(7, SessionState.AWAIT_POST)

    session = await manager.init(7, 70)

    assert session.state is SessionState.IDLE
    assert session.authorized is True


@pytest.mark.anyio
async def test_unknown_stored_state_reads_as_idle() -> None:
    store = MemoryKeyValueStore()
    await store.upsert(session_key(3), {"user_id": 3, "state": "mystery"})

    session = await UserSessionManager(store).get(3)

    assert session.state is SessionState.IDLE
    assert session.chat_id == 3


def test_session_to_dict_uses_plain_state_value() -> None:
    session = UserSession(user_id=1, chat_id=2, state=SessionState.AWAIT_POST)
    assert session.to_dict()["state"] == "await_post"
