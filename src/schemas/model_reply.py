"""Structured model reply: one tagged variant per intent.

The model is asked for JSON with an ``intent`` tag, a ``fields`` bag and a
``reply_text``. Each intent carries its own field model, so handlers get
typed attributes instead of a loose dict. Validation happens once, where
the raw provider text is parsed.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class Intent(str, Enum):
    CREATE_COMPLAINT = "CREATE_COMPLAINT"
    UPDATE_COMPLAINT = "UPDATE_COMPLAINT"
    CANCEL_COMPLAINT = "CANCEL_COMPLAINT"
    CHECK_STATUS = "CHECK_STATUS"
    HISTORY = "HISTORY"
    KNOWLEDGE_QUERY = "KNOWLEDGE_QUERY"
    SERVICE_INFO = "SERVICE_INFO"
    CREATE_SERVICE_REQUEST = "CREATE_SERVICE_REQUEST"
    UPDATE_SERVICE_REQUEST = "UPDATE_SERVICE_REQUEST"
    CANCEL_SERVICE_REQUEST = "CANCEL_SERVICE_REQUEST"
    QUESTION = "QUESTION"
    UNKNOWN = "UNKNOWN"


KNOWN_INTENTS = {intent.value for intent in Intent}

# Intents whose reply may state facts that must come from the knowledge base.
KNOWLEDGE_DEPENDENT_INTENTS = {
    Intent.KNOWLEDGE_QUERY,
    Intent.SERVICE_INFO,
    Intent.QUESTION,
    Intent.UNKNOWN,
}


class _Fields(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    missing_info: list[str] = Field(default_factory=list)

    required: ClassVar[tuple[str, ...]] = ()

    def missing_required(self) -> list[str]:
        return [name for name in self.required if not getattr(self, name, "")]


class ComplaintFields(_Fields):
    kategori: str = ""
    alamat: str = ""
    deskripsi: str = ""
    rt_rw: str = ""
    jenis: str = ""
    required: ClassVar[tuple[str, ...]] = ("kategori", "alamat")


class ComplaintRefFields(_Fields):
    complaint_id: str = ""
    alamat: str = ""
    deskripsi: str = ""
    rt_rw: str = ""
    cancel_reason: str = ""
    required: ClassVar[tuple[str, ...]] = ("complaint_id",)


class StatusFields(_Fields):
    complaint_id: str = ""
    request_number: str = ""

    def missing_required(self) -> list[str]:
        if self.complaint_id or self.request_number:
            return []
        return ["complaint_id"]


class KnowledgeFields(_Fields):
    knowledge_category: str = ""


class ServiceFields(_Fields):
    service_slug: str = ""
    service_name: str = ""
    required: ClassVar[tuple[str, ...]] = ("service_slug",)


class ServiceRequestRefFields(_Fields):
    request_number: str = ""
    cancel_reason: str = ""
    required: ClassVar[tuple[str, ...]] = ("request_number",)


class GenericFields(_Fields):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)


class _ReplyBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    reply_text: str
    guidance_text: str = ""
    needs_knowledge: bool = False
    follow_up_questions: list[str] = Field(default_factory=list)

    def fields_dict(self) -> dict[str, Any]:
        data = self.fields.model_dump()  # type: ignore[attr-defined]
        return {k: v for k, v in data.items() if v not in ("", [], None)}


class CreateComplaintReply(_ReplyBase):
    intent: Literal["CREATE_COMPLAINT"]
    fields: ComplaintFields = Field(default_factory=ComplaintFields)


class UpdateComplaintReply(_ReplyBase):
    intent: Literal["UPDATE_COMPLAINT"]
    fields: ComplaintRefFields = Field(default_factory=ComplaintRefFields)


class CancelComplaintReply(_ReplyBase):
    intent: Literal["CANCEL_COMPLAINT"]
    fields: ComplaintRefFields = Field(default_factory=ComplaintRefFields)


class CheckStatusReply(_ReplyBase):
    intent: Literal["CHECK_STATUS"]
    fields: StatusFields = Field(default_factory=StatusFields)


class HistoryReply(_ReplyBase):
    intent: Literal["HISTORY"]
    fields: GenericFields = Field(default_factory=GenericFields)


class KnowledgeReply(_ReplyBase):
    intent: Literal["KNOWLEDGE_QUERY"]
    fields: KnowledgeFields = Field(default_factory=KnowledgeFields)


class ServiceInfoReply(_ReplyBase):
    intent: Literal["SERVICE_INFO"]
    fields: ServiceFields = Field(default_factory=ServiceFields)


class CreateServiceRequestReply(_ReplyBase):
    intent: Literal["CREATE_SERVICE_REQUEST"]
    fields: ServiceFields = Field(default_factory=ServiceFields)


class UpdateServiceRequestReply(_ReplyBase):
    intent: Literal["UPDATE_SERVICE_REQUEST"]
    fields: ServiceRequestRefFields = Field(default_factory=ServiceRequestRefFields)


class CancelServiceRequestReply(_ReplyBase):
    intent: Literal["CANCEL_SERVICE_REQUEST"]
    fields: ServiceRequestRefFields = Field(default_factory=ServiceRequestRefFields)


class QuestionReply(_ReplyBase):
    intent: Literal["QUESTION"]
    fields: GenericFields = Field(default_factory=GenericFields)


class UnknownReply(_ReplyBase):
    intent: Literal["UNKNOWN"]
    fields: GenericFields = Field(default_factory=GenericFields)


ModelReply = Annotated[
    Union[
        CreateComplaintReply,
        UpdateComplaintReply,
        CancelComplaintReply,
        CheckStatusReply,
        HistoryReply,
        KnowledgeReply,
        ServiceInfoReply,
        CreateServiceRequestReply,
        UpdateServiceRequestReply,
        CancelServiceRequestReply,
        QuestionReply,
        UnknownReply,
    ],
    Field(discriminator="intent"),
]

MODEL_REPLY_ADAPTER: TypeAdapter = TypeAdapter(ModelReply)


# JSON schema sent to the provider as ``responseSchema``. Kept flat because
# the provider's schema dialect has no tagged unions.
RESPONSE_JSON_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "intent": {"type": "string", "enum": sorted(KNOWN_INTENTS)},
        "fields": {
            "type": "object",
            "properties": {
                "kategori": {"type": "string"},
                "alamat": {"type": "string"},
                "deskripsi": {"type": "string"},
                "rt_rw": {"type": "string"},
                "jenis": {"type": "string"},
                "knowledge_category": {"type": "string"},
                "complaint_id": {"type": "string"},
                "request_number": {"type": "string"},
                "service_slug": {"type": "string"},
                "service_name": {"type": "string"},
                "cancel_reason": {"type": "string"},
                "missing_info": {"type": "array", "items": {"type": "string"}},
            },
        },
        "reply_text": {"type": "string"},
        "guidance_text": {"type": "string"},
        "needs_knowledge": {"type": "boolean"},
        "follow_up_questions": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["intent", "fields", "reply_text"],
}
