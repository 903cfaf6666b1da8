"""Tests for the tolerant model-output parser and the reply schema."""

import json

import pytest

from src.errors import MalformedOutputError
from src.llm.response_parser import (
    FALLBACK_REPLY_TEXT,
    extract_payload,
    parse_model_output,
    repair_truncated_json,
    sanitize_payload,
)
from src.schemas.model_reply import (
    ComplaintFields,
    CreateComplaintReply,
    Intent,
    StatusFields,
)
from tests.conftest import model_reply


class TestRepairTruncatedJson:
    def test_closes_open_string_and_object(self):
        assert json.loads(repair_truncated_json('{"reply_text": "Baik Pak')) == {"reply_text": "Baik Pak"}

    def test_closes_nested_structures(self):
        repaired = repair_truncated_json('{"fields": {"missing_info": ["alamat",')
        assert json.loads(repaired) == {"fields": {"missing_info": ["alamat"]}}

    def test_escaped_quote_is_not_a_terminator(self):
        repaired = repair_truncated_json('{"reply_text": "kata \\"ya')
        assert json.loads(repaired) == {"reply_text": 'kata "ya'}

    def test_complete_json_unchanged(self):
        assert repair_truncated_json('{"a": 1}') == '{"a": 1}'


class TestExtractPayload:
    def test_strict(self):
        _, strategy = extract_payload(model_reply("QUESTION"))
        assert strategy == "strict"

    def test_repaired(self):
        payload, strategy = extract_payload('{"intent": "QUESTION", "reply_text": "Halo Pak')
        assert strategy == "repaired"
        assert payload["reply_text"] == "Halo Pak"

    def test_extracted_from_prose(self):
        text = 'Berikut jawabannya:\n```json\n{"intent": "QUESTION", "reply_text": "Halo"}\n```'
        payload, strategy = extract_payload(text)
        assert strategy == "extracted"
        assert payload["intent"] == "QUESTION"

    def test_regex_recovery(self):
        text = 'intent: "intent": "HISTORY", "reply_text": "Ini riwayat\\nAnda" ]] garbage'
        payload, strategy = extract_payload(text)
        assert strategy == "regex"
        assert payload["intent"] == "HISTORY"
        assert payload["reply_text"] == "Ini riwayat\nAnda"

    def test_fallback(self):
        payload, strategy = extract_payload("sorry, I cannot help with that")
        assert strategy == "fallback"
        assert payload["intent"] == "UNKNOWN"
        assert payload["reply_text"] == FALLBACK_REPLY_TEXT


class TestSanitizePayload:
    def test_unknown_intent_becomes_unknown(self):
        assert sanitize_payload({"intent": "ORDER_PIZZA", "reply_text": "x"})["intent"] == "UNKNOWN"

    def test_intent_is_upper_cased(self):
        assert sanitize_payload({"intent": " check_status ", "reply_text": "x"})["intent"] == "CHECK_STATUS"

    def test_null_strings_blanked(self):
        cleaned = sanitize_payload(
            {"intent": "CREATE_COMPLAINT", "reply_text": "x", "fields": {"rt_rw": "null", "alamat": None}}
        )
        assert cleaned["fields"] == {"rt_rw": ""}

    def test_missing_info_cleaned(self):
        cleaned = sanitize_payload(
            {"intent": "CREATE_COMPLAINT", "reply_text": "x", "fields": {"missing_info": ["alamat", None, "null"]}}
        )
        assert cleaned["fields"]["missing_info"] == ["alamat"]

    def test_none_top_level_optionals_dropped(self):
        cleaned = sanitize_payload({"intent": "QUESTION", "reply_text": "x", "guidance_text": None})
        assert "guidance_text" not in cleaned


class TestParseModelOutput:
    def test_variant_selected_by_intent(self):
        reply = parse_model_output(model_reply("CREATE_COMPLAINT", kategori="lampu_mati", alamat="jl merdeka"))

        assert isinstance(reply, CreateComplaintReply)
        assert isinstance(reply.fields, ComplaintFields)
        assert reply.fields.kategori == "lampu_mati"
        assert reply.fields.missing_required() == []

    def test_numbers_coerced_to_text(self):
        reply = parse_model_output(
            json.dumps({"intent": "CREATE_COMPLAINT", "fields": {"rt_rw": 5}, "reply_text": "ok"})
        )
        assert reply.fields.rt_rw == "5"

    def test_status_needs_one_identifier(self):
        assert StatusFields().missing_required() == ["complaint_id"]
        assert StatusFields(request_number="LAY-20250101-001").missing_required() == []

    def test_fields_dict_drops_empty_values(self):
        reply = parse_model_output(model_reply("SERVICE_INFO", service_slug="surat-keterangan-usaha"))
        assert reply.fields_dict() == {"service_slug": "surat-keterangan-usaha"}

    def test_truncated_reply_still_parses(self):
        reply = parse_model_output('{"intent": "KNOWLEDGE_QUERY", "fields": {}, "reply_text": "Kantor buka')
        assert reply.intent == Intent.KNOWLEDGE_QUERY
        assert reply.reply_text == "Kantor buka"

    def test_unparseable_text_yields_fallback_reply(self):
        reply = parse_model_output("<html>502 Bad Gateway</html>")
        assert reply.intent == "UNKNOWN"
        assert reply.reply_text == FALLBACK_REPLY_TEXT

    def test_schema_violation_raises(self):
        with pytest.raises(MalformedOutputError, match="schema validation after strict parsing"):
            parse_model_output(json.dumps({"intent": "QUESTION", "reply_text": ["not", "text"]}))

    def test_missing_reply_text_raises(self):
        with pytest.raises(MalformedOutputError):
            parse_model_output(json.dumps({"intent": "QUESTION", "fields": {}}))
