"""Dynamic prompt construction: history, knowledge and tone signals around the system prompt."""

import re
from typing import Optional

from src.prompts.system_prompts import (
    FIRST_CONVERSATION_NOTE,
    KNOWLEDGE_HEADER,
    LAST_MESSAGE_HEADER,
    SENTIMENT_TONES,
    SYSTEM_PROMPT,
)
from src.schemas.case_schema import KnowledgeResult
from src.schemas.conversation_schema import HistoryMessage, Role

HISTORY_WINDOW = 10

_CONFIDENCE_LABELS = {
    "high": ("TINGGI", "informasi cocok dengan pertanyaan"),
    "medium": ("SEDANG", "informasi mungkin hanya sebagian relevan"),
    "low": ("RENDAH", "informasi kurang relevan, jangan menebak"),
}

_ANGRY_RE = re.compile(
    r"\b(kesal|marah|kecewa\s+sekali|parah|payah|lambat\s+banget|gimana\s+sih|tidak\s+becus|ga\s+becus)\b"
    r"|!{2,}",
    re.IGNORECASE,
)
_NEGATIVE_RE = re.compile(r"\b(kecewa|sedih|susah|repot|belum\s+juga|lama\s+sekali|tidak\s+ditanggapi)\b", re.IGNORECASE)
_URGENT_RE = re.compile(
    r"\b(darurat|segera|bahaya|mendesak|urgent|kebakaran|tumbang|banjir|korban)\b", re.IGNORECASE
)
_POSITIVE_RE = re.compile(r"\b(mantap|bagus|keren|puas|senang|cepat\s+sekali)\b", re.IGNORECASE)

_ENGLISH_RE = re.compile(r"\b(the|please|what|where|how|when|is|are|my|report|office|hours)\b", re.IGNORECASE)
_JAVANESE_RE = re.compile(r"\b(nggih|monggo|sampun|dereng|matur\s+nuwun|kulo|panjenengan)\b", re.IGNORECASE)
_SUNDANESE_RE = re.compile(r"\b(punten|hatur\s+nuhun|mangga|abdi|teu|naon)\b", re.IGNORECASE)


def detect_sentiment(message: str) -> str:
    """Coarse tone of a message: angry, urgent, negative, positive or neutral.

    Examples:
        >>> detect_sentiment("pohon tumbang menutup jalan, tolong segera")
        'urgent'
        >>> detect_sentiment("cek status laporan")
        'neutral'
    """
    if _ANGRY_RE.search(message):
        return "angry"
    if _URGENT_RE.search(message):
        return "urgent"
    if _NEGATIVE_RE.search(message):
        return "negative"
    if _POSITIVE_RE.search(message):
        return "positive"
    return "neutral"


def detect_language(message: str) -> Optional[str]:
    """Non-Indonesian language hint, or None for plain Indonesian."""
    if _JAVANESE_RE.search(message):
        return "jawa"
    if _SUNDANESE_RE.search(message):
        return "sunda"
    if len(_ENGLISH_RE.findall(message)) >= 2:
        return "english"
    return None


def build_history_section(history: Optional[list[HistoryMessage]], limit: int = HISTORY_WINDOW) -> str:
    if not history:
        return FIRST_CONVERSATION_NOTE
    lines = []
    for item in history[-limit:]:
        speaker = "User" if item.role == Role.USER else "Assistant"
        lines.append(f"{speaker}: {item.content}")
    return "\n".join(lines)


def build_knowledge_section(knowledge: Optional[KnowledgeResult]) -> str:
    """Knowledge block with its confidence line; empty when nothing was found."""
    if knowledge is None or not knowledge.context.strip():
        return ""
    label, reason = _CONFIDENCE_LABELS.get(knowledge.confidence or "low", _CONFIDENCE_LABELS["low"])
    return f"\n\n{KNOWLEDGE_HEADER}\n{knowledge.context.strip()}\n[CONFIDENCE: {label} - {reason}]"


def build_signal_lines(message: str, profile_name: Optional[str] = None) -> list[str]:
    """Context lines injected right before the user's message."""
    lines: list[str] = []
    language = detect_language(message)
    if language == "english":
        lines.append("[BAHASA] Warga menulis dalam bahasa Inggris. Balas dalam bahasa Inggris yang sederhana.")
    elif language:
        lines.append(
            f"[BAHASA] Warga memakai bahasa {language}. Balas dalam bahasa Indonesia yang mudah dipahami."
        )

    sentiment = detect_sentiment(message)
    if sentiment != "neutral":
        lines.append(f"[SENTIMEN: {sentiment.upper()}] {SENTIMENT_TONES[sentiment]}")

    if profile_name:
        lines.append(f"[PROFIL] Nama warga: {profile_name}. Sapa dengan Pak/Bu {profile_name} bila sesuai.")
    return lines


def build_prompt(
    message: str,
    history: Optional[list[HistoryMessage]] = None,
    knowledge: Optional[KnowledgeResult] = None,
    profile_name: Optional[str] = None,
) -> str:
    """Assemble the full model prompt for one turn."""
    parts = [
        SYSTEM_PROMPT + build_knowledge_section(knowledge),
        "",
        "RIWAYAT PERCAKAPAN:",
        build_history_section(history),
        "",
    ]
    signals = build_signal_lines(message, profile_name)
    if signals:
        parts.extend(signals)
        parts.append("")
    parts.append(LAST_MESSAGE_HEADER)
    parts.append(message.strip())
    return "\n".join(parts)
