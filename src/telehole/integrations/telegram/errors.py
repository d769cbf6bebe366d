from __future__ import annotations

from typing import Optional

from ...core.exceptions import TransportError


class TelegramAPIError(TransportError):
    """Telegram Bot API request failed (network, HTTP or ``ok: false``)."""

    def __init__(
        self,
        message: str,
        *,
        method: Optional[str] = None,
        error_code: Optional[int] = None,
        retry_after: Optional[int] = None,
        user_message: Optional[str] = None,
    ) -> None:
        super().__init__(message, user_message=user_message)
        self.method = method
        self.error_code = error_code
        self.retry_after = retry_after
