"""
Yes/no classification for pending confirmations.

Explicit answers ("ya", "oke", "tidak", "batal") are matched with regexes.
Anything else goes to a small model through the call planner with its own
model list and a short timeout. When the planner is exhausted the answer is
UNCERTAIN and the caller re-asks; a confirmation is never guessed.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from src.config import settings
from src.errors import MalformedOutputError
from src.llm.call_planner import CallPlanner
from src.llm.model_catalog import DEFAULT_MICRO_MODELS, parse_model_list_env

logger = logging.getLogger(__name__)


class ConfirmationDecision(str, Enum):
    CONFIRM = "CONFIRM"
    REJECT = "REJECT"
    UNCERTAIN = "UNCERTAIN"


@dataclass
class ConfirmationResult:
    decision: ConfirmationDecision
    confidence: float
    reason: str = ""
    source: str = "regex"  # "regex" | "model" | "default"


CONFIRM_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(ya|iya|yap|yup|ok|oke|okey|okay)$",
        r"^(baik|lanjut|lanjutkan|setuju|boleh|silakan|siap|benar|betul)$",
        r"^buat\s*(saja|aja)?$",
        r"^proses\s*(saja|aja)?$",
        r"^kirim\s*(saja|aja)?$",
        r"^ya,?\s*(lanjutkan|lanjut|buat|proses|benar|betul)",
        r"^sudah\s*(cukup)?$",
        r"^cukup$",
        r"^itu\s*(saja|aja)$",
        r"^(itu|ini)\s*(sudah|udah)$",
        r"^(sudah|udah)$",
        r"^(sudah|udah)\s*(itu|ini)$",
        r"^(udah|sudah)\s*(cukup|lengkap)$",
        r"^segitu\s*(saja|aja)?$",
        r"^ya\s*(sudah|udah|cukup)",
        r"^tidak\s*(perlu)?\s*(tambah|detail)",
        r"^(ga|gak|nggak|engga|enggak)\s*(perlu|usah)",
    )
]

REJECT_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(tidak|ga|gak|nggak|engga|enggak|bukan)$",
        r"^(batal|jangan|belum)$",
        r"^(gak|ga|nggak|tidak)\s+jadi$",
        r"^(bukan|salah)\s*(itu|nama\s*saya)?$",
    )
]

_TRAILING_PUNCT_RE = re.compile(r"[\s!.,]+$")
_FENCE_RE = re.compile(r"```(?:json)?\n?")

CONFIRMATION_PROMPT = """Anda adalah classifier konfirmasi untuk layanan publik.

TUGAS:
- Tentukan apakah pesan user MENGONFIRMASI (CONFIRM), MENOLAK (REJECT), atau BELUM JELAS (UNCERTAIN).
- Anggap pertanyaan minta link/form (misal: "mana linknya", "kirim link", "formnya mana") sebagai CONFIRM.
- Anggap penundaan/penolakan ("tidak", "nanti", "belum", "batal") sebagai REJECT.
- Jika netral atau ambigu, beri UNCERTAIN.

OUTPUT (JSON saja):
{{"decision": "CONFIRM|REJECT|UNCERTAIN", "confidence": 0.0-1.0, "reason": "short"}}

CONTOH:
Input: "iya" -> {{"decision":"CONFIRM","confidence":0.95,"reason":"explicit yes"}}
Input: "mana linknya?" -> {{"decision":"CONFIRM","confidence":0.92,"reason":"asks link"}}
Input: "nanti dulu" -> {{"decision":"REJECT","confidence":0.9,"reason":"postpone"}}
Input: "gimana ya" -> {{"decision":"UNCERTAIN","confidence":0.4,"reason":"ambiguous"}}

PESAN USER:
{message}
"""


def _clean(message: str) -> str:
    return _TRAILING_PUNCT_RE.sub("", message.strip().lower())


def is_confirmation(message: str) -> bool:
    cleaned = _clean(message)
    return any(p.search(cleaned) for p in CONFIRM_PATTERNS)


def is_rejection(message: str) -> bool:
    cleaned = _clean(message)
    return any(p.search(cleaned) for p in REJECT_PATTERNS)


def parse_confirmation_output(text: str) -> ConfirmationResult:
    """Parse the micro model's JSON answer, raising ``MalformedOutputError``."""
    cleaned = _FENCE_RE.sub("", text).replace("```", "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"JSON parsing failed for confirmation: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("confidence"), (int, float)):
        raise MalformedOutputError("Invalid confirmation response")
    try:
        decision = ConfirmationDecision(str(data.get("decision", "")).upper())
    except ValueError:
        raise MalformedOutputError(f"Unknown confirmation decision: {data.get('decision')!r}") from None
    confidence = max(0.0, min(1.0, float(data["confidence"])))
    return ConfirmationResult(decision, confidence, str(data.get("reason") or ""), source="model")


class ConfirmationClassifier:
    """Regex first, micro model second, UNCERTAIN last."""

    def __init__(
        self,
        planner: Optional[CallPlanner] = None,
        models: Optional[list[str]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.planner = planner
        self.models = models or parse_model_list_env(
            settings.model.micro_nlu_models, DEFAULT_MICRO_MODELS
        )
        self.timeout = timeout or settings.model.micro_timeout_seconds

    async def classify(self, message: str) -> ConfirmationResult:
        if is_confirmation(message):
            return ConfirmationResult(ConfirmationDecision.CONFIRM, 0.95, "explicit yes")
        if is_rejection(message):
            return ConfirmationResult(ConfirmationDecision.REJECT, 0.95, "explicit no")
        if self.planner is None or not message.strip():
            return ConfirmationResult(ConfirmationDecision.UNCERTAIN, 0.0, "no classifier", "default")

        outcome = await self.planner.execute(
            CONFIRMATION_PROMPT.format(message=message.strip()),
            models=self.models,
            parse=parse_confirmation_output,
            response_schema=None,
            timeout=self.timeout,
            use_env_override=False,
            temperature=0.1,
            max_output_tokens=200,
        )
        if not outcome.ok:
            logger.warning("Confirmation classifier exhausted: %s", outcome.last_error[:100])
            return ConfirmationResult(
                ConfirmationDecision.UNCERTAIN, 0.0, "classifier unavailable", "default"
            )
        return outcome.value
