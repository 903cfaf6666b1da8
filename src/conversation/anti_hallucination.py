"""
Anti-hallucination gate for knowledge-dependent replies.

Models like to invent office hours, fees and placeholder links
("[link formulir]"). The gate inspects a candidate reply, and when it
mentions such things without grounding it re-asks the model exactly once
with a correction block appended to the prompt. The retry only replaces the
candidate when it succeeds with a non-empty reply; either way residual
placeholder sentences are stripped from the reply that is kept.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from src.llm.call_planner import CallPlanner
from src.schemas.model_reply import ModelReply

logger = logging.getLogger(__name__)

KNOWLEDGE_MARKERS = ("KNOWLEDGE BASE YANG TERSEDIA:", "[CONFIDENCE:")

OFFICE_HOURS_PATTERNS = [
    re.compile(r"\bjam\s*(buka|tutup|operasional|layanan)\b", re.IGNORECASE),
    re.compile(r"\bpukul\s*\d{1,2}([.:]\d{2})?\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}([.:]\d{2})\s*-\s*\d{1,2}([.:]\d{2})\b"),
    re.compile(r"\b(senin|selasa|rabu|kamis|jumat|sabtu|minggu)\b", re.IGNORECASE),
]

COST_PATTERNS = [
    re.compile(r"\bbiaya\b", re.IGNORECASE),
    re.compile(r"\bgratis\b", re.IGNORECASE),
    re.compile(r"\b(bayar|pembayaran|tarif|retribusi)\b", re.IGNORECASE),
    re.compile(r"\b(rp\s*\d|rupiah\s*\d)", re.IGNORECASE),
]

FAKE_LINK_PATTERNS = [
    re.compile(r"\[link\s+[^\]]+\]", re.IGNORECASE),
    re.compile(r"\[.*?formulir.*?\]", re.IGNORECASE),
    re.compile(r"\[.*?cek\s+status.*?\]", re.IGNORECASE),
    re.compile(r"\(link\s+[^)]+\)", re.IGNORECASE),
    re.compile(r"https?://\[.*?\]", re.IGNORECASE),
    re.compile(r"www\.\[.*?\]", re.IGNORECASE),
    re.compile(r"<link.*?>", re.IGNORECASE),
    re.compile(r"formulir.*?secara\s+online", re.IGNORECASE),
]

_PLACEHOLDER_SENTENCES = [
    re.compile(r"[^.]*formulir\s+(pengaduan|pendaftaran|layanan)\s+secara\s+online[^.]*\.", re.IGNORECASE),
    re.compile(r"[^.]*\[.*?(formulir|cek\s*status|link|website).*?\][^.]*\.", re.IGNORECASE),
    re.compile(r"[^.]*melalui\s+\[.*?\][^.]*\.", re.IGNORECASE),
    re.compile(r"[^.]*di\s+\[.*?\][^.]*\.", re.IGNORECASE),
]
_LINK_TAG_RE = re.compile(r"\[link\s+[^\]]+\]", re.IGNORECASE)
_BLANK_LINES_RE = re.compile(r"\n{3,}")

CORRECTION_BLOCK = (
    "\n\nKOREKSI WAJIB (ANTI-HALU):\n"
    "- Jangan menyebut jam operasional/hari kerja/pukul tertentu jika TIDAK ada di KNOWLEDGE.\n"
    "- Jangan menyebut biaya (gratis/berbayar/angka Rp) jika TIDAK ada di KNOWLEDGE.\n"
    "- JANGAN PERNAH menyebut link placeholder seperti [link formulir], [link cek status], [website], dll.\n"
    "- Jika info tidak tersedia, jawab: \"Untuk jam/biaya, saya belum dapat info pastinya. "
    "Bisa saya bantu cekkan atau Bapak/Ibu bisa konfirmasi ke kantor ya.\"\n"
)


@dataclass
class HallucinationSignals:
    office_hours: bool = False
    cost: bool = False
    fake_links: bool = False

    def __or__(self, other: "HallucinationSignals") -> "HallucinationSignals":
        return HallucinationSignals(
            self.office_hours or other.office_hours,
            self.cost or other.cost,
            self.fake_links or other.fake_links,
        )


def detect_signals(text: Optional[str]) -> HallucinationSignals:
    safe = (text or "").strip()
    if not safe:
        return HallucinationSignals()
    return HallucinationSignals(
        office_hours=any(p.search(safe) for p in OFFICE_HOURS_PATTERNS),
        cost=any(p.search(safe) for p in COST_PATTERNS),
        fake_links=any(p.search(safe) for p in FAKE_LINK_PATTERNS),
    )


def has_knowledge_in_prompt(prompt: Optional[str]) -> bool:
    return any(marker in (prompt or "") for marker in KNOWLEDGE_MARKERS)


def needs_retry(
    reply_text: Optional[str], guidance_text: Optional[str], has_knowledge: bool
) -> tuple[bool, Optional[str]]:
    """Decide whether the candidate must be regenerated.

    Placeholder links always trigger a retry. Hours and fees only count as
    hallucinated when the prompt carried no knowledge.
    """
    signals = detect_signals(reply_text) | detect_signals(guidance_text)
    if signals.fake_links:
        return True, "Menyebut link palsu/placeholder"
    if has_knowledge or not (signals.office_hours or signals.cost):
        return False, None

    parts = []
    if signals.office_hours:
        parts.append("jam operasional")
    if signals.cost:
        parts.append("biaya")
    return True, f"Menyebut {' dan '.join(parts)} tanpa knowledge"


def append_correction(prompt: str) -> str:
    return prompt + CORRECTION_BLOCK


def sanitize_fake_links(text: Optional[str]) -> str:
    """Remove placeholder links and the sentences built around them.

    Examples:
        >>> sanitize_fake_links("Isi [formulir pengaduan] ya. Terima kasih.")
        'Terima kasih.'
    """
    if not text:
        return ""
    sanitized = _LINK_TAG_RE.sub("", text)
    for pattern in _PLACEHOLDER_SENTENCES:
        sanitized = pattern.sub("", sanitized)
    return _BLANK_LINES_RE.sub("\n\n", sanitized).strip()


@dataclass
class GateResult:
    reply: ModelReply
    retried: bool = False
    replaced: bool = False
    reason: Optional[str] = None


class AntiHallucinationGate:
    """One-shot guarded retry of a knowledge-dependent reply."""

    def __init__(self, planner: CallPlanner) -> None:
        self.planner = planner

    async def review(
        self,
        candidate: ModelReply,
        prompt: str,
        models: Optional[list[str]] = None,
        user_id: str = "",
    ) -> GateResult:
        should_retry, reason = needs_retry(
            candidate.reply_text, candidate.guidance_text, has_knowledge_in_prompt(prompt)
        )
        if not should_retry:
            return GateResult(reply=self._sanitized(candidate))

        logger.warning("Anti-hallucination gate triggered for %s: %s", user_id or "-", reason)
        outcome = await self.planner.execute(append_correction(prompt), models=models)

        if outcome.ok and outcome.value.reply_text.strip():
            logger.info("Anti-hallucination retry accepted (model %s)", outcome.metrics.model)
            return GateResult(
                reply=self._sanitized(outcome.value), retried=True, replaced=True, reason=reason
            )

        logger.warning("Anti-hallucination retry unusable, keeping sanitized candidate")
        return GateResult(reply=self._sanitized(candidate), retried=True, reason=reason)

    @staticmethod
    def _sanitized(reply: ModelReply) -> ModelReply:
        return reply.model_copy(
            update={
                "reply_text": sanitize_fake_links(reply.reply_text),
                "guidance_text": sanitize_fake_links(reply.guidance_text),
            }
        )
