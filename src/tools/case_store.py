"""
In-memory case service.

Stands in for the case-management service in the console demo and tests.
Behaves like the real API: ownership checks, final statuses that lock a
case, ``LAP-YYYYMMDD-NNN`` / ``LAY-YYYYMMDD-NNN`` tracking codes.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional, TypedDict

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
from src.tools.service_catalog import DEFAULT_COMPLAINT_TYPES, ServiceCatalog

logger = logging.getLogger(__name__)

FINAL_STATUSES = {"DONE", "CANCELED", "REJECT"}


class CaseRecord(TypedDict):
    """Full case record stored in the system."""

    case_type: CaseType
    case_id: str
    owner: str
    status: str
    kategori: str
    service_slug: str
    alamat: str
    rt_rw: str
    deskripsi: str
    reporter_name: str
    reporter_phone: str
    foto_url: Optional[str]
    admin_notes: str
    created_at: str
    updated_at: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryCaseService:
    """Complaints and service requests kept in a dict, keyed by tracking code."""

    def __init__(
        self,
        catalog: Optional[ServiceCatalog] = None,
        complaint_types: Optional[list[ComplaintType]] = None,
    ) -> None:
        self.catalog = catalog or ServiceCatalog()
        self.complaint_types = list(complaint_types or DEFAULT_COMPLAINT_TYPES)
        self._cases: dict[str, CaseRecord] = {}
        self._counters: dict[str, int] = {}
        self.calls: list[str] = []

    def _next_id(self, prefix: str) -> str:
        day = _now().strftime("%Y%m%d")
        key = f"{prefix}-{day}"
        self._counters[key] = self._counters.get(key, 0) + 1
        return f"{key}-{self._counters[key]:03d}"

    def _new_record(self, case_type: CaseType, owner: str, **values) -> CaseRecord:
        stamp = _now().isoformat()
        record: CaseRecord = {
            "case_type": case_type,
            "case_id": self._next_id("LAP" if case_type == "complaint" else "LAY"),
            "owner": owner,
            "status": "OPEN",
            "kategori": "",
            "service_slug": "",
            "alamat": "",
            "rt_rw": "",
            "deskripsi": "",
            "reporter_name": "",
            "reporter_phone": "",
            "foto_url": None,
            "admin_notes": "",
            "created_at": stamp,
            "updated_at": stamp,
        }
        record.update(values)  # type: ignore[typeddict-item]
        self._cases[record["case_id"]] = record
        return record

    def _owned(self, user_id: str, case_type: CaseType, case_id: str) -> CaseRecord:
        record = self._cases.get(case_id.upper())
        if record is None or record["case_type"] != case_type:
            raise DownstreamError(ErrorKind.DOWNSTREAM_NOT_FOUND, f"{case_id} not found")
        if record["owner"] != user_id:
            raise DownstreamError(ErrorKind.DOWNSTREAM_NOT_OWNER, f"{case_id} not owned by {user_id}")
        return record

    # -- CaseService protocol -------------------------------------------------

    async def create_complaint(self, draft: ComplaintDraft) -> str:
        self.calls.append("create_complaint")
        record = self._new_record(
            "complaint",
            draft.user_id,
            kategori=draft.kategori,
            alamat=draft.alamat,
            rt_rw=draft.rt_rw,
            deskripsi=draft.deskripsi,
            reporter_name=draft.reporter_name,
            reporter_phone=draft.reporter_phone,
            foto_url=draft.foto_url,
        )
        logger.info("Complaint created: %s for %s (%s)", record["case_id"], draft.user_id, draft.kategori)
        return record["case_id"]

    async def update_complaint(
        self,
        user_id: str,
        complaint_id: str,
        alamat: Optional[str] = None,
        deskripsi: Optional[str] = None,
        rt_rw: Optional[str] = None,
    ) -> None:
        self.calls.append("update_complaint")
        record = self._owned(user_id, "complaint", complaint_id)
        if record["status"] in FINAL_STATUSES:
            raise DownstreamError(ErrorKind.DOWNSTREAM_LOCKED, f"{complaint_id} is final")
        if alamat:
            record["alamat"] = alamat
        if deskripsi:
            record["deskripsi"] = deskripsi
        if rt_rw:
            record["rt_rw"] = rt_rw
        record["updated_at"] = _now().isoformat()
        logger.info("Complaint updated: %s", complaint_id)

    async def cancel(
        self, user_id: str, case_type: CaseType, case_id: str, reason: Optional[str] = None
    ) -> CancelResult:
        self.calls.append("cancel")
        record = self._owned(user_id, case_type, case_id)
        if record["status"] in FINAL_STATUSES:
            raise DownstreamError(ErrorKind.DOWNSTREAM_LOCKED, f"{case_id} is final")
        record["status"] = "CANCELED"
        record["admin_notes"] = reason or "Dibatalkan oleh masyarakat"
        record["updated_at"] = _now().isoformat()
        logger.info("Case cancelled: %s", case_id)
        return CancelResult(case_type=case_type, case_id=record["case_id"], note=record["admin_notes"])

    async def get_status(self, user_id: str, case_type: CaseType, case_id: str) -> CaseStatus:
        self.calls.append("get_status")
        record = self._owned(user_id, case_type, case_id)
        service = self.catalog.get(record["service_slug"]) if record["service_slug"] else None
        return CaseStatus(
            case_type=case_type,
            case_id=record["case_id"],
            status=record["status"],
            kategori=record["kategori"],
            service_name=service.name if service else "",
            alamat=record["alamat"],
            deskripsi=record["deskripsi"],
            admin_notes=record["admin_notes"],
            created_at=record["created_at"],
            updated_at=record["updated_at"],
        )

    async def get_history(self, user_id: str, channel: str) -> list[HistoryItem]:
        self.calls.append("get_history")
        own = [r for r in self._cases.values() if r["owner"] == user_id]
        own.sort(key=lambda r: r["created_at"], reverse=True)
        return [
            HistoryItem(
                case_type=r["case_type"],
                display_id=r["case_id"],
                status=r["status"],
                description=r["deskripsi"],
                created_at=r["created_at"],
            )
            for r in own
        ]

    async def get_service(self, slug: str) -> Optional[ServiceInfo]:
        self.calls.append("get_service")
        return self.catalog.get(slug)

    async def search_services(self, query: str) -> list[ServiceInfo]:
        self.calls.append("search_services")
        return self.catalog.search(query)

    async def get_edit_token(self, user_id: str, request_number: str) -> str:
        self.calls.append("get_edit_token")
        record = self._owned(user_id, "service", request_number)
        if record["status"] in FINAL_STATUSES:
            raise DownstreamError(ErrorKind.DOWNSTREAM_LOCKED, f"{request_number} is final")
        return uuid.uuid4().hex[:16]

    async def list_complaint_types(self) -> list[ComplaintType]:
        self.calls.append("list_complaint_types")
        return list(self.complaint_types)

    # -- test and demo helpers ------------------------------------------------

    def add_service_request(self, user_id: str, service_slug: str, status: str = "OPEN") -> str:
        """Seed a service request (they are filed through the web form, not chat)."""
        service = self.catalog.get(service_slug)
        record = self._new_record(
            "service", user_id, service_slug=service_slug, status=status,
            deskripsi=service.name if service else "",
        )
        return record["case_id"]

    def set_status(self, case_id: str, status: str, admin_notes: str = "") -> None:
        record = self._cases[case_id]
        record["status"] = status
        record["admin_notes"] = admin_notes
        record["updated_at"] = _now().isoformat()

    def get(self, case_id: str) -> Optional[CaseRecord]:
        return self._cases.get(case_id)

    def reset(self) -> None:
        """Clear all cases. Used by test fixtures for isolation."""
        self._cases.clear()
        self._counters.clear()
        self.calls.clear()
