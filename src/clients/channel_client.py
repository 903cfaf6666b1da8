"""HTTP client for the channel service's stored conversation history."""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from src.clients.base import BaseServiceClient
from src.config import ServiceConfig, settings
from src.schemas.conversation_schema import HistoryMessage, Role

logger = logging.getLogger(__name__)


def _timestamp(value: Any) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return 0.0
    return 0.0


class ChannelServiceClient(BaseServiceClient):
    """Reads recent WhatsApp messages of a user, oldest first."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        config = config or settings.services
        super().__init__(
            config.channel_service_url, config.internal_api_key, config.timeout_seconds, client
        )

    async def fetch_history(self, user_id: str, limit: int = 30) -> list[HistoryMessage]:
        body = await self._request(
            "GET", "/internal/messages", params={"wa_user_id": user_id, "limit": limit}
        )
        raw = body.get("messages", []) if isinstance(body, dict) else body or []
        messages = sorted(raw, key=lambda m: _timestamp(m.get("timestamp")))
        return [
            HistoryMessage(
                role=Role.USER if m.get("direction") == "IN" else Role.ASSISTANT,
                content=m.get("message_text") or "",
                timestamp=_timestamp(m.get("timestamp")) or None,
            )
            for m in messages
        ]
