"""
Tolerant parsing of structured model output.

Providers regularly return JSON cut off by the output-token limit or
wrapped in prose. The parse ladder, in order:

1. strict ``json.loads``
2. close unterminated strings and brackets (``repair_truncated_json``)
3. the largest ``{...}`` substring, raw then repaired
4. regex extraction of ``intent`` and ``reply_text``
5. a fixed "technical error" payload

Whatever survives is sanitized and validated into a ``ModelReply`` variant.
"""

import json
import logging
import re
from typing import Any, Optional

from pydantic import ValidationError

from src.errors import MalformedOutputError
from src.schemas.model_reply import KNOWN_INTENTS, MODEL_REPLY_ADAPTER, Intent, ModelReply

logger = logging.getLogger(__name__)

FALLBACK_REPLY_TEXT = "Maaf, terjadi kesalahan teknis. Silakan ulangi pertanyaan Anda."

_NULL_STRINGS = {"null", "NULL", "Null"}
_NULLABLE_FIELDS = ("rt_rw", "alamat", "deskripsi", "knowledge_category", "request_number")

_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_INTENT_RE = re.compile(r'"intent"\s*:\s*"([^"]+)"')
_REPLY_RE = re.compile(r'"reply_text"\s*:\s*"((?:[^"\\]|\\.)*)"')
_TRAILING_COMMA_RE = re.compile(r",\s*$")


def fallback_payload() -> dict[str, Any]:
    return {
        "intent": Intent.UNKNOWN.value,
        "fields": {},
        "reply_text": FALLBACK_REPLY_TEXT,
        "guidance_text": "",
        "needs_knowledge": False,
    }


def repair_truncated_json(text: str) -> str:
    """Close whatever a truncated JSON document left open.

    Examples:
        >>> repair_truncated_json('{"a": "hel')
        '{"a": "hel"}'
        >>> repair_truncated_json('{"a": [1, 2,')
        '{"a": [1, 2]}'
    """
    result = text.strip()
    in_string = False
    escaped = False
    closers: list[str] = []

    for ch in result:
        if escaped:
            escaped = False
            continue
        if ch == "\\" and in_string:
            escaped = True
            continue
        if ch == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if ch == "{":
            closers.append("}")
        elif ch == "[":
            closers.append("]")
        elif ch in "}]" and closers and closers[-1] == ch:
            closers.pop()

    if in_string:
        result += '"'
    result = _TRAILING_COMMA_RE.sub("", result)
    while closers:
        result += closers.pop()
    return result


def _loads_object(text: str) -> Optional[dict]:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def extract_payload(text: str) -> tuple[dict[str, Any], str]:
    """Run the parse ladder; returns the payload and the strategy that won."""
    payload = _loads_object(text)
    if payload is not None:
        return payload, "strict"

    payload = _loads_object(repair_truncated_json(text))
    if payload is not None:
        logger.info("Model JSON repaired by closing open structures")
        return payload, "repaired"

    match = _OBJECT_RE.search(text)
    if match:
        payload = _loads_object(match.group(0))
        if payload is not None:
            logger.info("Model JSON extracted from surrounding text")
            return payload, "extracted"
        payload = _loads_object(repair_truncated_json(match.group(0)))
        if payload is not None:
            logger.info("Extracted model JSON repaired")
            return payload, "extracted_repaired"

    intent_match = _INTENT_RE.search(text)
    if intent_match:
        reply_match = _REPLY_RE.search(text)
        reply_text = (
            reply_match.group(1).replace("\\n", "\n").replace('\\"', '"')
            if reply_match
            else FALLBACK_REPLY_TEXT
        )
        logger.info("Model reply fields recovered by regex (intent=%s)", intent_match.group(1))
        return {
            "intent": intent_match.group(1),
            "fields": {},
            "reply_text": reply_text,
            "guidance_text": "",
            "needs_knowledge": False,
        }, "regex"

    logger.error("All JSON recovery strategies failed; preview: %r", text[:300])
    return fallback_payload(), "fallback"


def _blank_null(value: Any) -> Any:
    if isinstance(value, str) and value in _NULL_STRINGS:
        return ""
    return value


def sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Blank literal "null" strings and drop None values the schema cannot hold."""
    cleaned = dict(payload)

    intent = str(cleaned.get("intent") or "").strip().upper()
    cleaned["intent"] = intent if intent in KNOWN_INTENTS else Intent.UNKNOWN.value

    for key in ("guidance_text", "needs_knowledge", "follow_up_questions"):
        if cleaned.get(key) is None:
            cleaned.pop(key, None)
    if "guidance_text" in cleaned:
        cleaned["guidance_text"] = _blank_null(cleaned["guidance_text"])

    fields = cleaned.get("fields")
    if not isinstance(fields, dict):
        fields = {}
    fields = {k: v for k, v in fields.items() if v is not None}
    for key in _NULLABLE_FIELDS:
        if key in fields:
            fields[key] = _blank_null(fields[key])
    missing = fields.get("missing_info")
    if isinstance(missing, list):
        fields["missing_info"] = [
            item for item in missing if item is not None and item not in _NULL_STRINGS
        ]
    elif missing is not None:
        fields.pop("missing_info")
    cleaned["fields"] = fields
    return cleaned


def parse_model_output(text: str) -> ModelReply:
    """Turn raw provider text into a validated reply variant.

    Raises:
        MalformedOutputError: the recovered payload does not fit the schema
            (for example ``reply_text`` is missing or not a string).
    """
    payload, strategy = extract_payload(text)
    cleaned = sanitize_payload(payload)
    try:
        return MODEL_REPLY_ADAPTER.validate_python(cleaned)
    except ValidationError as exc:
        raise MalformedOutputError(
            f"Model reply failed schema validation after {strategy} parsing: "
            f"{exc.error_count()} error(s)"
        ) from exc
