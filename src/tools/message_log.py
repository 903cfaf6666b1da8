"""In-memory channel service: the per-user message log a chat channel keeps."""

import time
from typing import Optional

from src.schemas.conversation_schema import HistoryMessage, Role


class InMemoryChannelService:
    """Stores inbound and outbound messages; serves them back oldest first."""

    def __init__(self) -> None:
        self._messages: dict[str, list[HistoryMessage]] = {}
        self.fetches = 0

    def record(self, user_id: str, role: Role, content: str, timestamp: Optional[float] = None) -> None:
        self._messages.setdefault(user_id, []).append(
            HistoryMessage(role=role, content=content, timestamp=timestamp or time.time())
        )

    async def fetch_history(self, user_id: str, limit: int = 30) -> list[HistoryMessage]:
        self.fetches += 1
        return list(self._messages.get(user_id, [])[-limit:])

    def reset(self) -> None:
        self._messages.clear()
        self.fetches = 0
