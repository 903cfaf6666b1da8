"""
Fast intent classifier: pure regex checks that run before any model call.

``classify`` never touches the network and never raises. A result with
``skip_model=True`` is self-contained (an explicit yes/no, a tracking code,
a history request) and can be resolved directly; other matches only
pre-seed extracted fields for the full model path. No match is the normal
case and returns an empty result.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from src.conversation.intent_patterns import (
    CANCEL_PATTERNS,
    CANCEL_SERVICE_PATTERNS,
    CHECK_STATUS_PATTERNS,
    COMPLAINT_CATEGORY_PATTERNS,
    COMPLAINT_ID_RE,
    CONFIRMATION_PATTERNS,
    CREATE_COMPLAINT_PATTERNS,
    CREATE_SERVICE_REQUEST_PATTERNS,
    GREETING_PATTERNS,
    HISTORY_PATTERNS,
    KNOWLEDGE_CATEGORY_PATTERNS,
    KNOWLEDGE_QUERY_PATTERNS,
    NIK_RE,
    PHONE_RE,
    REJECTION_PATTERNS,
    SERVICE_CODE_PATTERNS,
    SERVICE_REQUEST_ID_RE,
    THANKS_PATTERNS,
    UPDATE_COMPLAINT_PATTERNS,
    UPDATE_SERVICE_REQUEST_PATTERNS,
    find_matching_category,
    matches_any,
)

logger = logging.getLogger(__name__)

MAX_CLASSIFIABLE_LENGTH = 300
MAX_GREETING_LENGTH = 30
MAX_SHORT_REPLY_LENGTH = 20

GREETING = "GREETING"
CONFIRMATION = "CONFIRMATION"
REJECTION = "REJECTION"
THANKS = "THANKS"


@dataclass
class ClassificationResult:
    """Outcome of the fast classifier; ``intent`` is None when nothing matched."""

    intent: Optional[str] = None
    confidence: float = 0.0
    extracted_fields: dict[str, Any] = field(default_factory=dict)
    skip_model: bool = False
    reason: str = ""

    @property
    def matched(self) -> bool:
        return self.intent is not None


def extract_ids(message: str) -> dict[str, str]:
    """Tracking codes in the message, upper-cased.

    Examples:
        >>> extract_ids("cek lap-20251201-001 ya")
        {'complaint_id': 'LAP-20251201-001'}
    """
    ids: dict[str, str] = {}
    complaint = COMPLAINT_ID_RE.search(message)
    if complaint:
        ids["complaint_id"] = complaint.group(1).upper()
    request = SERVICE_REQUEST_ID_RE.search(message)
    if request:
        ids["request_number"] = request.group(1).upper()
    return ids


def extract_nik(message: str) -> Optional[str]:
    match = NIK_RE.search(message)
    return match.group(1) if match else None


def extract_phone(message: str) -> Optional[str]:
    match = PHONE_RE.search(message)
    return match.group(1) if match else None


def classify(message: str) -> ClassificationResult:
    """Run the ordered pattern battery over one message."""
    clean = message.strip()
    if len(clean) > MAX_CLASSIFIABLE_LENGTH:
        logger.debug("Message too long for fast classification (%d chars)", len(clean))
        return ClassificationResult(reason="message too long")

    if len(clean) < MAX_GREETING_LENGTH and matches_any(clean, GREETING_PATTERNS):
        return ClassificationResult(GREETING, 0.95, {}, False, "greeting pattern")

    if len(clean) < MAX_SHORT_REPLY_LENGTH:
        if matches_any(clean, CONFIRMATION_PATTERNS):
            return ClassificationResult(
                CONFIRMATION, 0.95, {"is_confirmation": True}, True, "confirmation pattern"
            )
        if matches_any(clean, REJECTION_PATTERNS):
            return ClassificationResult(
                REJECTION, 0.95, {"is_rejection": True}, True, "rejection pattern"
            )
        if matches_any(clean, THANKS_PATTERNS):
            return ClassificationResult(THANKS, 0.95, {}, True, "thanks pattern")

    ids = extract_ids(clean)
    if ids:
        return ClassificationResult("CHECK_STATUS", 0.95, ids, True, "tracking code present")

    if matches_any(clean, CHECK_STATUS_PATTERNS):
        return ClassificationResult("CHECK_STATUS", 0.85, {}, False, "status phrase")

    # No tracking code past this point.
    # Cancel before update: "batalkan perubahan laporan" must not become an update.
    if matches_any(clean, CANCEL_SERVICE_PATTERNS):
        return ClassificationResult("CANCEL_SERVICE_REQUEST", 0.85, {}, False, "cancel service pattern")
    if matches_any(clean, CANCEL_PATTERNS):
        return ClassificationResult("CANCEL_COMPLAINT", 0.85, {}, False, "cancel pattern")

    if matches_any(clean, UPDATE_SERVICE_REQUEST_PATTERNS):
        return ClassificationResult("UPDATE_SERVICE_REQUEST", 0.75, {}, False, "update service pattern")
    if matches_any(clean, UPDATE_COMPLAINT_PATTERNS):
        return ClassificationResult("UPDATE_COMPLAINT", 0.75, {}, False, "update pattern")

    if matches_any(clean, HISTORY_PATTERNS):
        return ClassificationResult("HISTORY", 0.9, {}, True, "history pattern")

    if matches_any(clean, CREATE_COMPLAINT_PATTERNS):
        kategori = find_matching_category(clean, COMPLAINT_CATEGORY_PATTERNS)
        fields = {"kategori": kategori} if kategori else {}
        return ClassificationResult(
            "CREATE_COMPLAINT",
            0.9 if kategori else 0.8,
            fields,
            False,
            f"complaint pattern ({kategori})" if kategori else "complaint pattern",
        )

    if matches_any(clean, CREATE_SERVICE_REQUEST_PATTERNS):
        fields = {
            "service_code": find_matching_category(clean, SERVICE_CODE_PATTERNS),
            "nik": extract_nik(clean),
            "phone": extract_phone(clean),
        }
        fields = {k: v for k, v in fields.items() if v}
        return ClassificationResult(
            "CREATE_SERVICE_REQUEST",
            0.9 if "service_code" in fields else 0.8,
            fields,
            False,
            "service request pattern",
        )

    if matches_any(clean, KNOWLEDGE_QUERY_PATTERNS):
        category = find_matching_category(clean, KNOWLEDGE_CATEGORY_PATTERNS)
        fields = {"knowledge_category": category} if category else {}
        return ClassificationResult("KNOWLEDGE_QUERY", 0.85, fields, False, "knowledge pattern")

    return ClassificationResult(reason="no pattern matched")
