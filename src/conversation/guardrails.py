"""
Guardrails around a turn: spam and flood checks before processing, reply
validation after.

Three independent layers, each checking a different concern:
1. ContentSpamGuardrail: rejects empty, oversized, symbol-only, link and scam messages
2. FloodGuardrail: bans a user for a while after identical or rapid-fire messages
3. ResponseGuardrail: masks profanity, truncates, and strips leaked JSON/code

These are composed into a GuardrailPipeline used by the turn orchestrator.
"""

import logging
import re
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from src.cache.ttl_cache import TTLCache
from src.config import GuardrailConfig, settings

logger = logging.getLogger(__name__)

EMPTY_REPLY_TEXT = "Ada yang bisa saya bantu lagi?"
BROKEN_REPLY_TEXT = "Maaf, terjadi kesalahan. Silakan ulangi pertanyaan Anda."
TRUNCATION_NOTE = "...\n\nPesan terpotong karena terlalu panjang."

# flood state entries kept at most
MAX_TRACKED_USERS = 10000


@dataclass
class GuardrailResult:
    """Outcome of a single guardrail check."""
    passed: bool
    violation_type: Optional[str] = None
    message: Optional[str] = None
    severity: str = "warning"  # "warning" | "block"


class ContentSpamGuardrail:
    """Rejects messages that are not worth a model call."""

    MIN_LENGTH = 2
    MAX_LENGTH = 3000

    SPAM_PATTERNS = [
        re.compile(r"(.)\1{30,}"),
        re.compile(r"^[^\w\s]+$"),
        re.compile(r"(http|https|www\.|bit\.ly|t\.co|tinyurl)", re.IGNORECASE),
        re.compile(r"\b(viagra|casino|poker|judi|togel|slot|xxx|porn)\b", re.IGNORECASE),
        re.compile(r"\b(click\s+here|klik\s+disini|download\s+now|claim\s+now)\b", re.IGNORECASE),
        re.compile(
            r"\b(menang\s+jutaan|hadiah\s+milyar|transfer\s+sekarang|bonus\s+besar)\b",
            re.IGNORECASE,
        ),
    ]

    def check_message(self, message: str) -> GuardrailResult:
        if not message or len(message) < self.MIN_LENGTH:
            return GuardrailResult(
                passed=False, violation_type="too_short",
                message="Message is empty or too short.", severity="block",
            )
        if len(message) > self.MAX_LENGTH:
            return GuardrailResult(
                passed=False, violation_type="too_long",
                message=f"Message exceeds {self.MAX_LENGTH} characters.", severity="block",
            )
        for pattern in self.SPAM_PATTERNS:
            if pattern.search(message):
                return GuardrailResult(
                    passed=False, violation_type="spam_content",
                    message=f"Message matches spam pattern {pattern.pattern!r}.",
                    severity="block",
                )
        return GuardrailResult(passed=True)


@dataclass
class _UserTraffic:
    last_text: str = ""
    identical_count: int = 0
    recent: deque = field(default_factory=deque)
    banned_until: float = 0.0


class FloodGuardrail:
    """Per-user flood protection with a temporary ban.

    A user is banned for ``spam_ban_seconds`` after sending the same text
    ``spam_max_identical`` times in a row, or more than
    ``spam_rate_max_messages`` messages inside ``spam_rate_window_seconds``.
    """

    def __init__(self, config: Optional[GuardrailConfig] = None, clock=time.monotonic) -> None:
        self.config = config or settings.guardrails
        self._clock = clock
        # An entry is stale once its rate window and any ban have both run out.
        ttl = self.config.spam_rate_window_seconds + self.config.spam_ban_seconds
        self.traffic: TTLCache = TTLCache(MAX_TRACKED_USERS, ttl, name="flood_guard", clock=clock)

    @property
    def tracked_users(self) -> int:
        self.traffic.purge_expired()
        return len(self.traffic)

    def check_user(self, user_id: str, message: str) -> GuardrailResult:
        now = self._clock()
        traffic: _UserTraffic = self.traffic.get(user_id) or _UserTraffic()
        self.traffic.set(user_id, traffic)

        if traffic.banned_until > now:
            return GuardrailResult(
                passed=False, violation_type="flood_banned",
                message=f"User banned for {traffic.banned_until - now:.0f}s more.",
                severity="block",
            )

        normalized = message.strip().lower()
        if normalized == traffic.last_text:
            traffic.identical_count += 1
        else:
            traffic.last_text = normalized
            traffic.identical_count = 1

        window = self.config.spam_rate_window_seconds
        traffic.recent.append(now)
        while traffic.recent and now - traffic.recent[0] > window:
            traffic.recent.popleft()

        if traffic.identical_count >= self.config.spam_max_identical:
            return self._ban(user_id, traffic, now, "identical_messages")
        if len(traffic.recent) > self.config.spam_rate_max_messages:
            return self._ban(user_id, traffic, now, "message_rate")
        return GuardrailResult(passed=True)

    def _ban(self, user_id: str, traffic: _UserTraffic, now: float, reason: str) -> GuardrailResult:
        traffic.banned_until = now + self.config.spam_ban_seconds
        traffic.identical_count = 0
        traffic.recent.clear()
        logger.warning("Flood guard banned %s (%s)", user_id, reason)
        return GuardrailResult(
            passed=False, violation_type=reason,
            message=f"Flood detected ({reason}).", severity="block",
        )

    def reset(self, user_id: str) -> None:
        self.traffic.delete(user_id)


class ResponseGuardrail:
    """Sanitizes a reply before it reaches the citizen."""

    PROFANITY_PATTERNS = [
        re.compile(
            r"\b(anjing|babi|bangsat|kontol|memek|ngentot|jancok|kampret|tai|asu|bajingan|keparat)\b",
            re.IGNORECASE,
        ),
        re.compile(r"\b(bodoh|tolol|idiot|goblok|bego|dungu)\b", re.IGNORECASE),
    ]
    CODE_FENCE_RE = re.compile(r"```[\s\S]*?```")
    JSON_FRAGMENT_RE = re.compile(r"\{\"[\s\S]*?\}")

    def __init__(self, max_length: Optional[int] = None) -> None:
        self.max_length = max_length or settings.guardrails.max_response_length

    def validate(self, response: str) -> str:
        if not response or not response.strip():
            return EMPTY_REPLY_TEXT

        cleaned = response
        for pattern in self.PROFANITY_PATTERNS:
            cleaned = pattern.sub("***", cleaned)

        if len(cleaned) > self.max_length:
            cleaned = cleaned[: self.max_length - 50] + TRUNCATION_NOTE

        if "```" in cleaned or '{"' in cleaned:
            cleaned = self.CODE_FENCE_RE.sub("", cleaned)
            cleaned = self.JSON_FRAGMENT_RE.sub("", cleaned).strip()
            if len(cleaned) < 10:
                logger.warning("Reply was mostly code/JSON, replaced with fallback")
                return BROKEN_REPLY_TEXT

        return cleaned


def validate_response(response: str) -> str:
    """Module-level shortcut for ``ResponseGuardrail().validate``."""
    return ResponseGuardrail().validate(response)


class GuardrailPipeline:
    """Composes the guardrails into pre-processing and post-processing checks."""

    def __init__(self, config: Optional[GuardrailConfig] = None, clock=time.monotonic) -> None:
        config = config or settings.guardrails
        self.content = ContentSpamGuardrail()
        self.flood = FloodGuardrail(config, clock=clock)
        self.response = ResponseGuardrail(config.max_response_length)

    def check_user_input(self, user_id: str, message: str) -> list[GuardrailResult]:
        """Pre-processing: content spam first, then per-user flood state."""
        content = self.content.check_message(message)
        if not content.passed:
            return [content]
        flood = self.flood.check_user(user_id, message)
        return [] if flood.passed else [flood]

    def is_spam(self, user_id: str, message: str) -> bool:
        violations = self.check_user_input(user_id, message)
        for violation in violations:
            logger.warning("Spam rejected for %s: %s", user_id, violation.violation_type)
        return bool(violations)

    def check_reply(self, text: str) -> str:
        return self.response.validate(text)
