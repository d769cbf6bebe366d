from __future__ import annotations

from typing import Any, Optional, Sequence

import httpx

from .constants import TELEGRAM_ALLOWED_UPDATES, TELEGRAM_API_BASE_URL
from .errors import TelegramAPIError


class TelegramBotClient:
    """Thin async wrapper over the Telegram Bot API methods the bot uses.

    Every call either returns the decoded ``result`` or raises
    ``TelegramAPIError``; nothing is retried here.
    """

    def __init__(
        self,
        bot_token: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        base_url: str = TELEGRAM_API_BASE_URL,
        timeout_seconds: float = 15.0,
    ) -> None:
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None
        self._base_url = f"{base_url.rstrip('/')}/bot{bot_token}"
        self._timeout_seconds = timeout_seconds

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "TelegramBotClient":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        payload: Optional[dict[str, Any]] = None,
        *,
        timeout_seconds: Optional[float] = None,
    ) -> Any:
        body = {
            key: value for key, value in (payload or {}).items() if value is not None
        }
        try:
            response = await self._client.post(
                f"{self._base_url}/{method}",
                json=body,
                timeout=timeout_seconds or self._timeout_seconds,
            )
        except httpx.HTTPError as exc:
            raise TelegramAPIError(
                f"Telegram API network error for {method}: {exc}", method=method
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise TelegramAPIError(
                f"Telegram API returned non-JSON response for {method}: "
                f"status={response.status_code}",
                method=method,
                error_code=response.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise TelegramAPIError(
                f"Telegram API returned malformed response for {method}",
                method=method,
                error_code=response.status_code,
            )
        if not data.get("ok"):
            description = str(data.get("description") or "unknown error")
            parameters = data.get("parameters")
            retry_after = (
                parameters.get("retry_after") if isinstance(parameters, dict) else None
            )
            error_code = data.get("error_code")
            raise TelegramAPIError(
                f"Telegram API {method} failed: {description}",
                method=method,
                error_code=error_code if isinstance(error_code, int) else None,
                retry_after=retry_after if isinstance(retry_after, int) else None,
            )
        return data.get("result")

    async def get_me(self) -> dict[str, Any]:
        result = await self._request("getMe")
        return result if isinstance(result, dict) else {}

    async def get_chat(self, chat_id: int | str) -> dict[str, Any]:
        result = await self._request("getChat", {"chat_id": chat_id})
        return result if isinstance(result, dict) else {}

    async def get_updates(
        self,
        *,
        offset: Optional[int] = None,
        timeout: int = 30,
        allowed_updates: Sequence[str] = TELEGRAM_ALLOWED_UPDATES,
    ) -> list[dict[str, Any]]:
        result = await self._request(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout,
                "allowed_updates": list(allowed_updates),
            },
            timeout_seconds=float(timeout) + self._timeout_seconds,
        )
        if not isinstance(result, list):
            return []
        return [item for item in result if isinstance(item, dict)]

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        entities: Optional[list[dict[str, Any]]] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        return await self._send(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "entities": entities or None,
                "reply_to_message_id": reply_to_message_id,
                "reply_markup": reply_markup,
            },
        )

    async def send_sticker(
        self,
        chat_id: int,
        sticker: str,
        *,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        return await self._send(
            "sendSticker",
            {
                "chat_id": chat_id,
                "sticker": sticker,
                "reply_to_message_id": reply_to_message_id,
                "reply_markup": reply_markup,
            },
        )

    async def send_media(
        self,
        method: str,
        field_name: str,
        chat_id: int,
        file_id: str,
        *,
        caption: Optional[str] = None,
        caption_entities: Optional[list[dict[str, Any]]] = None,
        reply_to_message_id: Optional[int] = None,
        reply_markup: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Send a photo/video/document that Telegram already stores by file id."""
        return await self._send(
            method,
            {
                "chat_id": chat_id,
                field_name: file_id,
                "caption": caption,
                "caption_entities": caption_entities or None,
                "reply_to_message_id": reply_to_message_id,
                "reply_markup": reply_markup,
            },
        )

    async def forward_message(
        self, chat_id: int, from_chat_id: int, message_id: int
    ) -> dict[str, Any]:
        return await self._send(
            "forwardMessage",
            {
                "chat_id": chat_id,
                "from_chat_id": from_chat_id,
                "message_id": message_id,
            },
        )

    async def edit_message_reply_markup(
        self,
        chat_id: int,
        message_id: int,
        reply_markup: Optional[dict[str, Any]],
    ) -> None:
        await self._request(
            "editMessageReplyMarkup",
            {
                "chat_id": chat_id,
                "message_id": message_id,
                "reply_markup": reply_markup,
            },
        )

    async def answer_callback_query(
        self, callback_query_id: str, *, text: Optional[str] = None
    ) -> None:
        await self._request(
            "answerCallbackQuery",
            {"callback_query_id": callback_query_id, "text": text},
        )

    async def set_my_commands(self, commands: Sequence[tuple[str, str]]) -> None:
        await self._request(
            "setMyCommands",
            {
                "commands": [
                    {"command": command, "description": description}
                    for command, description in commands
                ]
            },
        )

    async def _send(self, method: str, payload: dict[str, Any]) -> dict[str, Any]:
        result = await self._request(method, payload)
        if not isinstance(result, dict):
            raise TelegramAPIError(
                f"Telegram API {method} returned no message", method=method
            )
        return result
