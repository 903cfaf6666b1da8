"""HTTP client for the knowledge-retrieval service."""

import logging
from typing import Optional

import httpx

from src.clients.base import BaseServiceClient
from src.config import ServiceConfig, settings
from src.schemas.case_schema import KnowledgeResult

logger = logging.getLogger(__name__)


class KnowledgeServiceClient(BaseServiceClient):
    """Keyword/semantic search over the village knowledge base."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        limit: int = 5,
    ) -> None:
        config = config or settings.services
        super().__init__(
            config.knowledge_service_url, config.internal_api_key, config.timeout_seconds, client
        )
        self.limit = limit

    async def search(self, query: str, categories: Optional[list[str]] = None) -> KnowledgeResult:
        body = await self._request(
            "POST",
            "/api/internal/knowledge",
            json={"query": query, "categories": categories, "limit": self.limit},
        )
        if not isinstance(body, dict):
            return KnowledgeResult()
        if body.get("context"):
            return KnowledgeResult(
                context=body["context"], total=int(body.get("total", 0)), confidence=body.get("confidence")
            )

        items = body.get("data") or []
        context = "\n\n".join(
            f"[{str(item.get('category', 'umum')).upper()}] {item.get('title', '')}\n{item.get('content', '')}"
            for item in items
        )
        logger.info("Knowledge search for %r returned %d item(s)", query[:50], len(items))
        return KnowledgeResult(context=context, total=int(body.get("total", len(items))))
