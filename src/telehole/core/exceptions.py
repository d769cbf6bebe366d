"""Error taxonomy shared by the hole state machine and its collaborators.

Every error carries an optional ``user_message``: the text the router echoes
back to the user when the error reaches a flow boundary.
"""

from __future__ import annotations

from typing import Optional


class HoleError(Exception):
    """Base error for the telehole package."""

    def __init__(self, message: str, *, user_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.user_message = user_message

    def describe(self) -> str:
        return self.user_message or str(self)


class ConfigError(HoleError):
    """Invalid or incomplete startup configuration."""


class ValidationError(HoleError):
    """User input the state machine cannot act on."""


class NotFoundError(HoleError):
    """A session or thread lookup came back empty."""


class SessionNotFoundError(NotFoundError):
    """The user never ran /start."""

    def __init__(self, user_id: int) -> None:
        super().__init__(
            f"no session for user {user_id}",
            user_message="Please run /start command first",
        )
        self.user_id = user_id


class ThreadNotFoundError(NotFoundError):
    """No hole is known under the requested id."""

    def __init__(self, message: str) -> None:
        super().__init__(message, user_message="Hole does not exist, or is locked.")


class ThreadNotReadyError(NotFoundError):
    """The hole exists but its creation has not been committed yet."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message, user_message="Hole is not ready yet, please try again later."
        )


class ThreadBindingError(HoleError):
    """A hole's mirrored copy was bound twice with different ids."""


class TransportError(HoleError):
    """Relaying content to the messaging platform failed."""


class CallbackDecodeError(HoleError):
    """An affordance payload is malformed, stale or foreign."""


class StoreError(HoleError):
    """The persistence backend failed while serving a request."""
