"""Collaborator interfaces the orchestrator depends on.

The HTTP clients in this package and the in-memory stand-ins in
``src/tools`` both satisfy these protocols.
"""

from typing import Optional, Protocol

from src.schemas.case_schema import (
    CancelResult,
    CaseStatus,
    CaseType,
    ComplaintDraft,
    ComplaintType,
    HistoryItem,
    KnowledgeResult,
    ServiceInfo,
)
from src.schemas.conversation_schema import HistoryMessage


class CaseService(Protocol):
    async def create_complaint(self, draft: ComplaintDraft) -> str:
        """Submit a complaint and return its ``LAP-...`` id."""
        ...

    async def update_complaint(
        self,
        user_id: str,
        complaint_id: str,
        alamat: Optional[str] = None,
        deskripsi: Optional[str] = None,
        rt_rw: Optional[str] = None,
    ) -> None:
        ...

    async def cancel(
        self, user_id: str, case_type: CaseType, case_id: str, reason: Optional[str] = None
    ) -> CancelResult:
        ...

    async def get_status(self, user_id: str, case_type: CaseType, case_id: str) -> CaseStatus:
        ...

    async def get_history(self, user_id: str, channel: str) -> list[HistoryItem]:
        ...

    async def get_service(self, slug: str) -> Optional[ServiceInfo]:
        ...

    async def search_services(self, query: str) -> list[ServiceInfo]:
        ...

    async def get_edit_token(self, user_id: str, request_number: str) -> str:
        ...

    async def list_complaint_types(self) -> list[ComplaintType]:
        ...


class KnowledgeService(Protocol):
    async def search(self, query: str, categories: Optional[list[str]] = None) -> KnowledgeResult:
        ...


class ChannelService(Protocol):
    async def fetch_history(self, user_id: str, limit: int = 30) -> list[HistoryMessage]:
        """Recent messages of one user, oldest first."""
        ...
