"""
Citizen name detection.

The assistant must know who it is talking to before it files anything. A
name can come from the profile store, from an earlier user message in the
history, or from the current message. These helpers are pure regex; the
orchestrator decides whether to accept, confirm or ask.
"""

import re
from typing import Optional

from src.conversation.intent_patterns import (
    CONFIRMATION_PATTERNS,
    GREETING_PATTERNS,
    REJECTION_PATTERNS,
    THANKS_PATTERNS,
    matches_any,
)
from src.schemas.conversation_schema import HistoryMessage, Role

ASK_NAME_WELCOME = (
    "Selamat datang di layanan GovConnect {village}.\n"
    "Boleh kami tahu nama Bapak/Ibu terlebih dahulu?"
)
ASK_NAME = "Baik Pak/Bu, sebelum melanjutkan boleh kami tahu nama Anda terlebih dahulu?"
ASK_NAME_AGAIN = (
    'Maaf Pak/Bu, saya belum menangkap nama Anda. Mohon tuliskan nama Anda, misalnya: "Nama saya Yoga".'
)
ASK_CORRECT_NAME = "Mohon maaf, boleh kami tahu nama yang benar?"
NAME_THANKS = "Baik, terima kasih Pak/Bu {name}. Ada yang bisa kami bantu?"
CONFIRM_NAME = "Baik, apakah benar ini dengan Bapak/Ibu {name}?"
CONFIRM_NAME_AGAIN = "Baik, apakah benar ini dengan Bapak/Ibu {name}? Balas YA atau BUKAN ya."

_NAME_PATTERNS = [
    re.compile(r"nama\s+(?:saya|aku|gue|gw)\s+(?:adalah\s+)?([a-zA-Z\s]{2,30})", re.IGNORECASE),
    re.compile(r"^nama\s+([a-zA-Z\s]{2,30})$", re.IGNORECASE),
    re.compile(r"^nama\s*:\s*([a-zA-Z\s]{2,30})$", re.IGNORECASE),
    re.compile(r"^([a-zA-Z\s]{2,30})\s+itu\s+nama\s+saya$", re.IGNORECASE),
    re.compile(r"panggil\s+saya\s+([a-zA-Z\s]{2,30})", re.IGNORECASE),
    re.compile(r"saya\s+([a-zA-Z\s]{2,30})", re.IGNORECASE),
]
_BARE_NAME_RE = re.compile(r"^[a-zA-Z]+(?:\s+[a-zA-Z]+)?$")
_HONORIFIC_RE = re.compile(r"^(pak|bu|bapak|ibu)\s+", re.IGNORECASE)
_EXPLICIT_NAME_RE = re.compile(r"(nama\s+(saya|aku|gue|gw)|panggil\s+saya)", re.IGNORECASE)
_ASSISTANT_PROMPT_RE = re.compile(
    r"(?:dengan|ini)\s+(?:Bapak/Ibu|Bapak|Ibu|Pak|Bu)\s+([a-zA-Z\s]{2,30})", re.IGNORECASE
)
_NAME_PROMPTED_RE = re.compile(r"(nama|dengan\s+siapa|siapa\s+nama)", re.IGNORECASE)

# First words that make a candidate a sentence rather than a name.
NON_NAME_WORDS = {
    "saya", "aku", "ya", "iya", "y", "tidak", "gak", "nggak", "ok", "oke", "sip", "siap", "baik",
    "mau", "ingin", "ada", "sudah", "udah", "belum", "akan", "lagi", "minta", "perlu",
    "butuh", "lapor", "melapor", "punya", "tinggal", "tanya", "bertanya", "cek", "tolong",
    "bisa", "boleh", "sedang", "warga", "dari", "di", "yang", "ini", "itu", "apa",
    "lampu", "jalan", "sampah", "banjir", "pohon", "surat", "layanan", "status",
}


def _titlecase_first(name: str) -> str:
    return name[:1].upper() + name[1:]


def _plausible(name: str) -> bool:
    words = name.lower().split()
    return bool(words) and words[0] not in NON_NAME_WORDS


def extract_name(text: str) -> Optional[str]:
    """Pull a name out of one user message, or None.

    Examples:
        >>> extract_name("nama saya budi santoso")
        'Budi santoso'
        >>> extract_name("Pak Andi")
        'Andi'
        >>> extract_name("saya mau lapor") is None
        True
    """
    cleaned = re.sub(r"[.!?,]+$", "", (text or "").strip()).strip()
    if not cleaned:
        return None
    if any(
        matches_any(cleaned, patterns)
        for patterns in (GREETING_PATTERNS, CONFIRMATION_PATTERNS, REJECTION_PATTERNS, THANKS_PATTERNS)
    ):
        return None
    if cleaned.lower() in NON_NAME_WORDS:
        return None

    for pattern in _NAME_PATTERNS:
        match = pattern.search(cleaned)
        if match and match.group(1):
            raw = _HONORIFIC_RE.sub("", match.group(1).strip()).strip()
            name = " ".join(raw.split()[:2])
            if name and _plausible(name):
                return _titlecase_first(name)

    if 2 <= len(cleaned) <= 30 and _BARE_NAME_RE.match(cleaned):
        normalized = _HONORIFIC_RE.sub("", cleaned).strip()
        if normalized and _plausible(normalized):
            return normalized[:1].upper() + normalized[1:].lower()
    return None


def is_explicit_name(message: str) -> bool:
    """True when the user said "nama saya X" or "panggil saya X"."""
    return bool(_EXPLICIT_NAME_RE.search(message))


def extract_name_from_history(history: Optional[list[HistoryMessage]]) -> Optional[str]:
    """Most recent name the user stated explicitly ("nama saya X") in the history.

    Bare answers to a name prompt are not trusted here; they go through the
    YA/BUKAN confirmation instead and may have been rejected.
    """
    for item in reversed(history or []):
        if item.role != Role.USER or not is_explicit_name(item.content):
            continue
        name = extract_name(item.content)
        if name:
            return name
    return None


def last_assistant_message(history: Optional[list[HistoryMessage]]) -> str:
    for item in reversed(history or []):
        if item.role == Role.ASSISTANT:
            return item.content or ""
    return ""


def was_name_prompted(history: Optional[list[HistoryMessage]]) -> bool:
    """Did the last assistant message ask for the user's name?"""
    last = last_assistant_message(history)
    return bool(last) and bool(_NAME_PROMPTED_RE.search(last))


def extract_name_from_assistant_prompt(text: Optional[str]) -> Optional[str]:
    """Name proposed by an earlier "apakah benar ini dengan Bapak/Ibu X?" prompt."""
    cleaned = (text or "").strip()
    match = _ASSISTANT_PROMPT_RE.search(cleaned)
    if not match:
        return None
    name = " ".join(match.group(1).split()[:2])
    return _titlecase_first(name) if name else None
