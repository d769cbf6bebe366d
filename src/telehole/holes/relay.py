"""Outbound delivery contract used by the reply router."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from .callbacks import CallbackToken
from .content import Content


@dataclass(frozen=True)
class Affordance:
    """A single inline control attached to a relayed message."""

    label: str
    token: CallbackToken


@dataclass(frozen=True)
class SendOptions:
    reply_target_id: Optional[int] = None
    pseudonym_label: Optional[str] = None
    affordance: Optional[Affordance] = None


@runtime_checkable
class ContentRelay(Protocol):
    """Moves content onto the platform; failures raise ``TransportError``."""

    async def send(
        self,
        destination: int,
        content: Content,
        options: SendOptions = SendOptions(),
    ) -> int:
        """Deliver ``content`` and return the platform message id."""

    async def attach_affordance(
        self, destination: int, message_id: int, affordance: Affordance
    ) -> None:
        """Replace the control attached to an already delivered message."""

    async def acknowledge(self, callback_id: str, text: Optional[str] = None) -> None:
        """Answer an affordance activation, optionally with a transient text."""
