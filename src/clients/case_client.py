"""HTTP client for the case-management service (complaints and service requests)."""

import logging
from typing import Any, Optional

import httpx

from src.clients.base import BaseServiceClient
from src.config import ServiceConfig, settings
from src.errors import DownstreamError, ErrorKind
from src.schemas.case_schema import (
    CancelResult,
    CaseStatus,
    CaseType,
    ComplaintDraft,
    ComplaintType,
    HistoryItem,
    ServiceInfo,
)

logger = logging.getLogger(__name__)


class CaseServiceClient(BaseServiceClient):
    """Async client for the case service's internal API."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        config = config or settings.services
        super().__init__(
            config.case_service_url, config.internal_api_key, config.timeout_seconds, client
        )

    @staticmethod
    def _case_path(case_type: CaseType, case_id: str) -> str:
        if case_type == "complaint":
            return f"/laporan/{case_id}"
        return f"/service-requests/{case_id}"

    async def create_complaint(self, draft: ComplaintDraft) -> str:
        payload = {
            "wa_user_id": draft.user_id if draft.channel == "whatsapp" else None,
            "channel": draft.channel.upper(),
            "channel_identifier": draft.user_id,
            "kategori": draft.kategori,
            "deskripsi": draft.deskripsi,
            "alamat": draft.alamat or None,
            "rt_rw": draft.rt_rw or None,
            "reporter_name": draft.reporter_name or None,
            "reporter_phone": draft.reporter_phone or None,
            "foto_url": draft.foto_url,
        }
        body = await self._request("POST", "/laporan/create", json=payload)
        data = self._data(body) or {}
        complaint_id = data.get("complaint_id") if isinstance(data, dict) else None
        if not complaint_id:
            raise DownstreamError(ErrorKind.DOWNSTREAM_UNAVAILABLE, "complaint_id missing in response")
        logger.info("Complaint %s created for %s (%s)", complaint_id, draft.user_id, draft.kategori)
        return complaint_id

    async def update_complaint(
        self,
        user_id: str,
        complaint_id: str,
        alamat: Optional[str] = None,
        deskripsi: Optional[str] = None,
        rt_rw: Optional[str] = None,
    ) -> None:
        payload = {"user_id": user_id, "alamat": alamat, "deskripsi": deskripsi, "rt_rw": rt_rw}
        await self._request(
            "PATCH",
            f"/laporan/{complaint_id}/update-by-user",
            json={k: v for k, v in payload.items() if v},
        )

    async def cancel(
        self, user_id: str, case_type: CaseType, case_id: str, reason: Optional[str] = None
    ) -> CancelResult:
        body = await self._request(
            "POST",
            f"{self._case_path(case_type, case_id)}/cancel",
            json={"user_id": user_id, "cancel_reason": reason},
        )
        data = self._data(body) or {}
        note = data.get("note", "") if isinstance(data, dict) else ""
        return CancelResult(case_type=case_type, case_id=case_id, note=note or reason or "")

    async def get_status(self, user_id: str, case_type: CaseType, case_id: str) -> CaseStatus:
        body = await self._request(
            "GET", f"{self._case_path(case_type, case_id)}/check", params={"user_id": user_id}
        )
        data: dict[str, Any] = self._data(body) or {}
        service = data.get("service") or {}
        return CaseStatus(
            case_type=case_type,
            case_id=case_id,
            status=str(data.get("status", "")),
            kategori=data.get("kategori") or "",
            service_name=service.get("name", "") if isinstance(service, dict) else "",
            alamat=data.get("alamat") or "",
            deskripsi=data.get("deskripsi") or "",
            admin_notes=data.get("admin_notes") or "",
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    async def get_history(self, user_id: str, channel: str) -> list[HistoryItem]:
        body = await self._request(
            "GET", "/user/history", params={"user_id": user_id, "channel": channel.upper()}
        )
        data = self._data(body) or {}
        items = data.get("combined", []) if isinstance(data, dict) else data
        return [
            HistoryItem(
                case_type=item.get("type", "complaint"),
                display_id=item.get("display_id", ""),
                status=item.get("status", ""),
                description=item.get("description") or "",
                created_at=item.get("created_at"),
            )
            for item in items or []
        ]

    async def get_service(self, slug: str) -> Optional[ServiceInfo]:
        try:
            body = await self._request("GET", "/services/by-slug", params={"slug": slug})
        except DownstreamError as e:
            if e.kind == ErrorKind.DOWNSTREAM_NOT_FOUND:
                return None
            raise
        data = self._data(body)
        return ServiceInfo.model_validate(data) if data else None

    async def search_services(self, query: str) -> list[ServiceInfo]:
        body = await self._request("GET", "/services/search", params={"q": query, "limit": 5})
        return [ServiceInfo.model_validate(item) for item in self._data(body) or []]

    async def get_edit_token(self, user_id: str, request_number: str) -> str:
        body = await self._request(
            "POST", f"/service-requests/{request_number}/edit-token", json={"user_id": user_id}
        )
        data = self._data(body) or {}
        token = data.get("edit_token") if isinstance(data, dict) else None
        if not token:
            raise DownstreamError(ErrorKind.DOWNSTREAM_UNAVAILABLE, "edit_token missing in response")
        return token

    async def list_complaint_types(self) -> list[ComplaintType]:
        body = await self._request("GET", "/complaint-types")
        return [ComplaintType.model_validate(item) for item in self._data(body) or []]
