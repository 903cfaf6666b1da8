"""Tests for the service clients and the Gemini provider over a mock transport."""

import json

import httpx
import pytest

from src.clients.base import INTERNAL_KEY_HEADER, error_kind_for
from src.clients.case_client import CaseServiceClient
from src.clients.channel_client import ChannelServiceClient
from src.clients.knowledge_client import KnowledgeServiceClient
from src.config import ServiceConfig
from src.errors import (
    DownstreamError,
    ErrorKind,
    ModelCallError,
    ModelInvalidCredentialError,
    ModelRateLimitedError,
    ModelTimeoutError,
    ModelUnsupportedError,
)
from src.llm.provider import GeminiProvider, error_class_for
from src.schemas.case_schema import ComplaintDraft
from src.schemas.conversation_schema import Role
from tests.conftest import USER_ID

SERVICES = ServiceConfig(
    case_service_url="http://case.test/",
    channel_service_url="http://channel.test",
    knowledge_service_url="http://knowledge.test",
    internal_api_key="secret",
    timeout_seconds=5,
)


class _Recorder:
    """Mock transport handler that records requests and replays one response."""

    def __init__(self, status: int = 200, body=None, raises: Exception = None, text: str = None):
        self.status = status
        self.body = body if body is not None else {}
        self.raises = raises
        self.text = text
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raises is not None:
            raise self.raises
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.body)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> dict:
        return json.loads(self.last.content)


def _http(recorder: _Recorder) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(recorder))


class TestErrorKinds:
    def test_body_code_wins(self):
        assert error_kind_for(400, {"error": "not_owner"}) == ErrorKind.DOWNSTREAM_NOT_OWNER
        assert error_kind_for(400, {"code": "ALREADY_COMPLETED"}) == ErrorKind.DOWNSTREAM_LOCKED

    def test_status_fallback(self):
        assert error_kind_for(404, None) == ErrorKind.DOWNSTREAM_NOT_FOUND
        assert error_kind_for(403, "forbidden") == ErrorKind.DOWNSTREAM_NOT_OWNER
        assert error_kind_for(500, {"error": "boom"}) == ErrorKind.DOWNSTREAM_UNAVAILABLE


class TestCaseServiceClient:
    @pytest.mark.asyncio
    async def test_create_complaint(self):
        recorder = _Recorder(body={"data": {"complaint_id": "LAP-20250101-001"}})
        client = CaseServiceClient(SERVICES, client=_http(recorder))
        draft = ComplaintDraft(user_id=USER_ID, kategori="lampu_mati", deskripsi="lampu mati")

        complaint_id = await client.create_complaint(draft)

        assert complaint_id == "LAP-20250101-001"
        assert str(recorder.last.url) == "http://case.test/laporan/create"
        assert recorder.last.headers[INTERNAL_KEY_HEADER] == "secret"
        payload = recorder.last_json()
        assert payload["wa_user_id"] == USER_ID
        assert payload["channel"] == "WHATSAPP"
        assert payload["alamat"] is None

    @pytest.mark.asyncio
    async def test_webchat_complaint_has_no_wa_id(self):
        recorder = _Recorder(body={"data": {"complaint_id": "LAP-20250101-002"}})
        client = CaseServiceClient(SERVICES, client=_http(recorder))
        draft = ComplaintDraft(
            user_id="web-abc", channel="webchat", kategori="sampah", deskripsi="x", reporter_phone="0812"
        )

        await client.create_complaint(draft)

        payload = recorder.last_json()
        assert payload["wa_user_id"] is None
        assert payload["channel_identifier"] == "web-abc"
        assert payload["reporter_phone"] == "0812"

    @pytest.mark.asyncio
    async def test_create_without_id_is_an_error(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(body={"data": {}})))
        draft = ComplaintDraft(user_id=USER_ID, kategori="sampah", deskripsi="x")

        with pytest.raises(DownstreamError, match="complaint_id missing"):
            await client.create_complaint(draft)

    @pytest.mark.asyncio
    async def test_update_sends_only_given_fields(self):
        recorder = _Recorder(body={"data": {}})
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        await client.update_complaint(USER_ID, "LAP-20250101-001", alamat="jalan melati no 7")

        assert recorder.last.method == "PATCH"
        assert recorder.last.url.path == "/laporan/LAP-20250101-001/update-by-user"
        assert recorder.last_json() == {"user_id": USER_ID, "alamat": "jalan melati no 7"}

    @pytest.mark.asyncio
    async def test_cancel_service_request(self):
        recorder = _Recorder(body={"data": {"note": "Dibatalkan warga"}})
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        result = await client.cancel(USER_ID, "service", "LAY-20250101-001", "sudah tidak perlu")

        assert recorder.last.url.path == "/service-requests/LAY-20250101-001/cancel"
        assert recorder.last_json()["cancel_reason"] == "sudah tidak perlu"
        assert result.note == "Dibatalkan warga"

    @pytest.mark.asyncio
    async def test_cancel_not_owner(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(403, {"error": "NOT_OWNER"})))

        with pytest.raises(DownstreamError) as excinfo:
            await client.cancel(USER_ID, "complaint", "LAP-20250101-001")
        assert excinfo.value.kind == ErrorKind.DOWNSTREAM_NOT_OWNER

    @pytest.mark.asyncio
    async def test_cancel_locked(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(409, {"message": "final"})))

        with pytest.raises(DownstreamError) as excinfo:
            await client.cancel(USER_ID, "complaint", "LAP-20250101-001")
        assert excinfo.value.kind == ErrorKind.DOWNSTREAM_LOCKED

    @pytest.mark.asyncio
    async def test_get_status(self):
        recorder = _Recorder(
            body={
                "data": {
                    "status": "PROCESS",
                    "kategori": "lampu_mati",
                    "alamat": None,
                    "admin_notes": "Teknisi dijadwalkan",
                    "created_at": "2025-01-01T08:00:00Z",
                }
            }
        )
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        status = await client.get_status(USER_ID, "complaint", "LAP-20250101-001")

        assert recorder.last.url.params["user_id"] == USER_ID
        assert status.status == "PROCESS"
        assert status.alamat == ""
        assert status.admin_notes == "Teknisi dijadwalkan"
        assert status.created_at.year == 2025

    @pytest.mark.asyncio
    async def test_get_history(self):
        recorder = _Recorder(
            body={
                "data": {
                    "combined": [
                        {"type": "complaint", "display_id": "LAP-20250101-001", "status": "OPEN"},
                        {"type": "service", "display_id": "LAY-20250101-001", "status": "DONE",
                         "description": "Surat Keterangan Usaha"},
                    ]
                }
            }
        )
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        items = await client.get_history(USER_ID, "whatsapp")

        assert recorder.last.url.params["channel"] == "WHATSAPP"
        assert [(i.case_type, i.display_id) for i in items] == [
            ("complaint", "LAP-20250101-001"),
            ("service", "LAY-20250101-001"),
        ]

    @pytest.mark.asyncio
    async def test_unknown_service_is_none(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(404, {"error": "NOT_FOUND"})))
        assert await client.get_service("tidak-ada") is None

    @pytest.mark.asyncio
    async def test_search_services(self):
        recorder = _Recorder(
            body={
                "data": [
                    {
                        "slug": "surat-keterangan-tidak-mampu",
                        "name": "Surat Keterangan Tidak Mampu",
                        "mode": "both",
                        "requirements": [{"label": "KTP"}, {"label": "KK", "order_index": 1}],
                    }
                ]
            }
        )
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        services = await client.search_services("tidak mampu")

        assert recorder.last.url.params["q"] == "tidak mampu"
        assert services[0].is_online
        assert [r.label for r in services[0].requirements] == ["KTP", "KK"]

    @pytest.mark.asyncio
    async def test_edit_token(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(body={"data": {"edit_token": "tok"}})))
        assert await client.get_edit_token(USER_ID, "LAY-20250101-001") == "tok"

    @pytest.mark.asyncio
    async def test_complaint_types(self):
        recorder = _Recorder(body={"data": [{"slug": "banjir", "label": "Banjir", "is_urgent": True}]})
        client = CaseServiceClient(SERVICES, client=_http(recorder))

        types = await client.list_complaint_types()

        assert types[0].is_urgent
        assert types[0].require_address

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        client = CaseServiceClient(
            SERVICES, client=_http(_Recorder(raises=httpx.ConnectError("connect ECONNREFUSED")))
        )

        with pytest.raises(DownstreamError, match="ECONNREFUSED") as excinfo:
            await client.get_history(USER_ID, "whatsapp")
        assert excinfo.value.kind == ErrorKind.DOWNSTREAM_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client = CaseServiceClient(SERVICES, client=_http(_Recorder(text="<html>ok</html>")))

        with pytest.raises(DownstreamError, match="invalid JSON"):
            await client.list_complaint_types()


class TestChannelServiceClient:
    @pytest.mark.asyncio
    async def test_history_sorted_oldest_first(self):
        recorder = _Recorder(
            body={
                "messages": [
                    {"direction": "OUT", "message_text": "Boleh tahu nama Anda?",
                     "timestamp": "2025-01-01T08:00:05Z"},
                    {"direction": "IN", "message_text": "halo", "timestamp": "2025-01-01T08:00:00Z"},
                ]
            }
        )
        client = ChannelServiceClient(SERVICES, client=_http(recorder))

        history = await client.fetch_history(USER_ID, limit=10)

        assert recorder.last.url.params["wa_user_id"] == USER_ID
        assert recorder.last.url.params["limit"] == "10"
        assert [(m.role, m.content) for m in history] == [
            (Role.USER, "halo"),
            (Role.ASSISTANT, "Boleh tahu nama Anda?"),
        ]
        assert history[1].timestamp - history[0].timestamp == 5


class TestKnowledgeServiceClient:
    @pytest.mark.asyncio
    async def test_prebuilt_context(self):
        recorder = _Recorder(body={"context": "Kantor buka 08.00", "total": 1, "confidence": "high"})
        client = KnowledgeServiceClient(SERVICES, client=_http(recorder))

        result = await client.search("jam buka", categories=["jadwal"])

        assert recorder.last_json() == {"query": "jam buka", "categories": ["jadwal"], "limit": 5}
        assert result.context == "Kantor buka 08.00"
        assert result.confidence == "high"

    @pytest.mark.asyncio
    async def test_items_formatted(self):
        recorder = _Recorder(
            body={"data": [{"category": "kontak", "title": "Alamat Kantor", "content": "Jl. Desa No. 1"}]}
        )
        client = KnowledgeServiceClient(SERVICES, client=_http(recorder))

        result = await client.search("alamat kantor")

        assert result.context == "[KONTAK] Alamat Kantor\nJl. Desa No. 1"
        assert result.total == 1


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_generate(self):
        recorder = _Recorder(
            body={
                "candidates": [{"content": {"parts": [{"text": '{"intent": '}, {"text": '"QUESTION"}'}]}}],
                "usageMetadata": {"promptTokenCount": 120, "candidatesTokenCount": 30, "totalTokenCount": 150},
            }
        )
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        response = await provider.generate("key-1", "gemini-2.5-flash", "halo", response_schema={"type": "object"})

        assert recorder.last.url.path == "/v1beta/models/gemini-2.5-flash:generateContent"
        assert recorder.last.url.params["key"] == "key-1"
        config = recorder.last_json()["generationConfig"]
        assert config["responseMimeType"] == "application/json"
        assert config["responseSchema"] == {"type": "object"}
        assert response.text == '{"intent": "QUESTION"}'
        assert (response.input_tokens, response.output_tokens, response.total_tokens) == (120, 30, 150)

    @pytest.mark.asyncio
    async def test_plain_text_call_has_no_schema(self):
        recorder = _Recorder(body={"candidates": [{"content": {"parts": [{"text": "ya"}]}}]})
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        response = await provider.generate("key-1", "gemini-2.0-flash", "halo")

        assert "responseSchema" not in recorder.last_json()["generationConfig"]
        assert response.total_tokens == 0

    @pytest.mark.asyncio
    async def test_http_error_keeps_status_and_body(self):
        recorder = _Recorder(429, {"error": {"status": "RESOURCE_EXHAUSTED"}})
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        with pytest.raises(ModelCallError, match="error 429: .*RESOURCE_EXHAUSTED"):
            await provider.generate("key-1", "gemini-2.5-flash", "halo")

    @pytest.mark.asyncio
    async def test_http_error_is_typed(self):
        recorder = _Recorder(429, {"error": {"status": "RESOURCE_EXHAUSTED"}})
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        with pytest.raises(ModelRateLimitedError) as info:
            await provider.generate("key-1", "gemini-2.5-flash", "halo")
        assert info.value.kind == ErrorKind.MODEL_RATE_LIMITED

    @pytest.mark.parametrize(
        "status, body, expected",
        [
            (400, {"error": {"status": "INVALID_ARGUMENT", "details": [{"reason": "API_KEY_INVALID"}]}},
             ModelInvalidCredentialError),
            (403, {"error": {"status": "PERMISSION_DENIED"}}, ModelInvalidCredentialError),
            (404, {"error": {"status": "NOT_FOUND"}}, ModelUnsupportedError),
            (200, {"error": {"status": "RESOURCE_EXHAUSTED"}}, ModelRateLimitedError),
            (503, {"error": {"message": "overloaded, request 84031"}}, ModelCallError),
        ],
    )
    def test_error_class_for(self, status, body, expected):
        assert error_class_for(status, body, json.dumps(body)) is expected

    @pytest.mark.asyncio
    async def test_server_error_has_no_kind(self):
        recorder = _Recorder(503, {"error": {"message": "overloaded, request 40312"}})
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        with pytest.raises(ModelCallError) as info:
            await provider.generate("key-1", "gemini-2.5-flash", "halo")
        assert info.value.kind is None

    @pytest.mark.asyncio
    async def test_blocked_prompt_has_no_candidates(self):
        recorder = _Recorder(body={"promptFeedback": {"blockReason": "SAFETY"}})
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        with pytest.raises(ModelCallError, match="no candidates"):
            await provider.generate("key-1", "gemini-2.5-flash", "halo")

    @pytest.mark.asyncio
    async def test_timeout(self):
        recorder = _Recorder(raises=httpx.ReadTimeout("read timed out"))
        provider = GeminiProvider("https://gemini.test", client=_http(recorder))

        with pytest.raises(ModelTimeoutError):
            await provider.generate("key-1", "gemini-2.5-flash", "halo")
