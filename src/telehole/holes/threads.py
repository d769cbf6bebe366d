"""Hole registry: per-thread pseudonyms and public/mirror id binding.

A hole is stored under its public id (the channel message id). The mirrored
copy inside the discussion group is bound later, when the platform's
automatic forward is observed, and indexed under a second key so replies can
find the hole by the id users see in the discussion group.

Participants are kept as an ordered, duplicate-free list; a user's position
in the list is their pseudonym ordinal within that hole. Ordinal 0 is the
original poster.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.config import HoleSurfaces
from ..core.exceptions import (
    ThreadBindingError,
    ThreadNotFoundError,
    ThreadNotReadyError,
)
from ..core.logging_utils import log_event
from ..core.store import KeyValueStore

AUTHOR_LABEL = "Author"
COMMENTER_LABEL_PREFIX = "Commenter №"
ORDINAL_WIDTH = 4

_PARTICIPANTS = "participants"


def render_pseudonym(ordinal: int) -> str:
    if ordinal < 0:
        raise ValueError("ordinal must be >= 0")
    if ordinal == 0:
        return AUTHOR_LABEL
    return f"{COMMENTER_LABEL_PREFIX}{ordinal:0{ORDINAL_WIDTH}d}"


@dataclass(frozen=True)
class Thread:
    public_id: int
    internal_id: Optional[int] = None
    participants: tuple[int, ...] = field(default_factory=tuple)

    @property
    def thread_id(self) -> int:
        return self.public_id

    def ordinal_of(self, user_id: int) -> Optional[int]:
        try:
            return self.participants.index(user_id)
        except ValueError:
            return None

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Thread":
        internal = record.get("internal_id")
        participants = record.get(_PARTICIPANTS)
        return cls(
            public_id=int(record["public_id"]),
            internal_id=int(internal) if internal is not None else None,
            participants=tuple(
                int(item) for item in participants if not isinstance(item, bool)
            )
            if isinstance(participants, list)
            else (),
        )


def public_key(public_id: int) -> str:
    return f"public:{public_id}"


def internal_key(internal_id: int) -> str:
    return f"internal:{internal_id}"


class ThreadRegistry:
    def __init__(
        self,
        store: KeyValueStore,
        surfaces: Optional[HoleSurfaces] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._store = store
        self._surfaces = surfaces
        self._logger = logger or logging.getLogger(__name__)

    async def create_thread(self, creator_user_id: int, public_id: int) -> int:
        """Register a freshly relayed post; the creator becomes ordinal 0."""
        await self._store.upsert(public_key(public_id), {"public_id": public_id})
        ordinal = await self._store.append_if_absent(
            public_key(public_id), _PARTICIPANTS, creator_user_id
        )
        if ordinal != 0:
            log_event(
                self._logger,
                logging.ERROR,
                "telehole.threads.create.creator_not_first",
                public_id=public_id,
                ordinal=ordinal,
            )
        return public_id

    async def register_participant(self, thread_id: int, user_id: int) -> int:
        record = await self._store.get(public_key(thread_id))
        if record is None:
            raise ThreadNotFoundError(f"hole {thread_id} does not exist")
        existing = Thread.from_record(record)
        ordinal = existing.ordinal_of(user_id)
        if ordinal is not None:
            return ordinal
        if not existing.participants:
            raise ThreadNotReadyError(f"hole {thread_id} has no author yet")
        return await self._store.append_if_absent(
            public_key(thread_id), _PARTICIPANTS, user_id
        )

    async def bind_internal_id(
        self, thread_id: int, internal_id: int
    ) -> tuple[Thread, bool]:
        """Bind the mirrored copy's id; binding twice to another id is an error.

        Returns the hole and whether this call created the binding. Seeing the
        same mirror again changes nothing.
        """
        record = await self._store.get(public_key(thread_id))
        if record is not None:
            bound = record.get("internal_id")
            if bound is not None and int(bound) != internal_id:
                raise ThreadBindingError(
                    f"hole {thread_id} is already bound to {bound}, "
                    f"refusing {internal_id}"
                )
            if bound is not None:
                return Thread.from_record(record), False
        await self._store.upsert(internal_key(internal_id), {"public_id": thread_id})
        updated = await self._store.upsert(
            public_key(thread_id),
            {"public_id": thread_id, "internal_id": internal_id},
        )
        return Thread.from_record(updated), True

    async def get(self, thread_id: int) -> Thread:
        return await self.resolve_by_public_id(thread_id)

    async def resolve_by_public_id(self, public_id: int) -> Thread:
        record = await self._store.get(public_key(public_id))
        if record is None:
            raise ThreadNotFoundError(f"hole {public_id} does not exist")
        return Thread.from_record(record)

    async def resolve_by_internal_id(self, internal_id: int) -> Thread:
        index = await self._store.get(internal_key(internal_id))
        if index is None or index.get("public_id") is None:
            raise ThreadNotFoundError(f"no hole is mirrored at {internal_id}")
        return await self.resolve_by_public_id(int(index["public_id"]))

    def link(self, thread: Thread) -> str:
        if self._surfaces is None:
            raise RuntimeError("thread links need resolved platform surfaces")
        return self._surfaces.hole_link(thread.public_id)
