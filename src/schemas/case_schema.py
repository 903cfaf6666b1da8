"""Complaint, service request and knowledge data models."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

CaseType = Literal["complaint", "service"]


class ComplaintDraft(BaseModel):
    """Complaint data collected across turns, ready to submit."""
    user_id: str
    channel: str = "whatsapp"
    kategori: str
    deskripsi: str
    alamat: str = ""
    rt_rw: str = ""
    reporter_name: str = ""
    reporter_phone: str = ""
    foto_url: Optional[str] = None


class CaseStatus(BaseModel):
    """Status of a complaint or service request, as seen by its owner."""
    case_type: CaseType
    case_id: str
    status: str
    kategori: str = ""
    service_name: str = ""
    alamat: str = ""
    deskripsi: str = ""
    admin_notes: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CancelResult(BaseModel):
    case_type: CaseType
    case_id: str
    note: str = ""


class HistoryItem(BaseModel):
    """One row of a citizen's complaint/service history."""
    case_type: CaseType
    display_id: str
    status: str
    description: str = ""
    created_at: Optional[datetime] = None


class ServiceRequirement(BaseModel):
    label: str
    is_required: bool = True
    order_index: int = 0


class ServiceInfo(BaseModel):
    """Administrative service offered by the village office."""
    slug: str
    name: str
    code: str = ""
    description: str = ""
    mode: Literal["online", "offline", "both"] = "online"
    is_active: bool = True
    requirements: list[ServiceRequirement] = Field(default_factory=list)

    @property
    def is_online(self) -> bool:
        return self.mode in ("online", "both")


class ComplaintType(BaseModel):
    """Complaint category known to the case service."""
    slug: str
    label: str
    is_urgent: bool = False
    require_address: bool = True


class KnowledgeResult(BaseModel):
    """Ranked knowledge context for a query; consumed opaquely by prompts."""
    context: str = ""
    total: int = 0
    confidence: Optional[str] = None
