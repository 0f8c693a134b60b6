"""Direct-message delivery through the Discord REST API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from gecko_mint.core.errors import MintError
from gecko_mint.core.settings import Settings

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_CREATED = 201
MAX_MESSAGE_LENGTH = 2000


class NotificationError(MintError):
    """Raised when a member could not be messaged."""


@dataclass(frozen=True)
class NotifierConfig:
    """Immutable configuration for member notifications."""

    api_base_url: str
    bot_token: str | None
    timeout_seconds: float

    @property
    def enabled(self) -> bool:
        return bool(self.bot_token)


def load_notifier_config(settings: Settings) -> NotifierConfig:
    """Build configuration object from application settings."""

    token = settings.discord_bot_token.get_secret_value() if settings.discord_bot_token else None
    return NotifierConfig(
        api_base_url=settings.discord_api_base_url.rstrip("/"),
        bot_token=token,
        timeout_seconds=float(settings.discord_http_timeout_seconds),
    )


class DiscordNotifier:
    """Opens a private channel to a member and sends one plain-text message."""

    def __init__(
        self,
        config: NotifierConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=httpx.Timeout(config.timeout_seconds),
            headers={"Authorization": f"Bot {config.bot_token}"} if config.bot_token else None,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.config.enabled:
            raise NotificationError("Discord bot token is not configured")
        try:
            response = await self._client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise NotificationError(f"Discord request {path} failed: {exc}") from exc
        if response.status_code not in (HTTP_OK, HTTP_CREATED):
            raise NotificationError(
                f"Discord responded with {response.status_code} for {path}: {response.text[:200]}"
            )
        try:
            return response.json()
        except ValueError as exc:
            raise NotificationError(f"Malformed Discord response for {path}") from exc

    async def open_dm_channel(self, member_id: int) -> str:
        """Return the id of the direct-message channel with ``member_id``."""
        channel = await self._post("/users/@me/channels", {"recipient_id": str(member_id)})
        channel_id = channel.get("id")
        if not channel_id:
            raise NotificationError(f"Discord did not return a DM channel for {member_id}")
        return str(channel_id)

    async def send_message(self, channel_id: str, content: str) -> None:
        if len(content) > MAX_MESSAGE_LENGTH:
            logger.warning(
                "Message to channel %s is %d characters; truncating to %d",
                channel_id,
                len(content),
                MAX_MESSAGE_LENGTH,
            )
            content = content[:MAX_MESSAGE_LENGTH]
        await self._post(f"/channels/{channel_id}/messages", {"content": content})

    async def notify(self, member_id: int, content: str) -> None:
        """Deliver ``content`` to ``member_id`` in a private channel."""
        channel_id = await self.open_dm_channel(member_id)
        await self.send_message(channel_id, content)
        logger.debug("Sent DM to member %s in channel %s", member_id, channel_id)
