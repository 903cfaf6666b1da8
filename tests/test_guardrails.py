"""Tests for the spam, flood and reply guardrails."""

import pytest

from src.conversation.guardrails import (
    BROKEN_REPLY_TEXT,
    EMPTY_REPLY_TEXT,
    MAX_TRACKED_USERS,
    TRUNCATION_NOTE,
    ContentSpamGuardrail,
    FloodGuardrail,
    ResponseGuardrail,
)
from tests.conftest import USER_ID, ManualClock, make_config


class TestContentSpamGuardrail:
    def setup_method(self):
        self.guard = ContentSpamGuardrail()

    def test_normal_message_passes(self):
        assert self.guard.check_message("lampu jalan mati di depan masjid").passed is True

    def test_too_short(self):
        result = self.guard.check_message("a")
        assert result.passed is False
        assert result.violation_type == "too_short"
        assert result.severity == "block"

    def test_too_long(self):
        assert self.guard.check_message("x " * 1501).violation_type == "too_long"

    @pytest.mark.parametrize(
        "message",
        [
            "!!!???",
            "cek ini https://bit.ly/promo",
            "main judi online yuk",
            "klik disini untuk hadiah",
            "selamat anda menang jutaan rupiah",
            "a" * 40,
        ],
    )
    def test_spam_patterns(self, message):
        result = self.guard.check_message(message)
        assert result.passed is False
        assert result.violation_type == "spam_content"


class TestFloodGuardrail:
    def setup_method(self):
        self.clock = ManualClock()
        self.guard = FloodGuardrail(make_config().guardrails, clock=self.clock)

    def _send(self, message: str):
        self.clock.advance(2)
        return self.guard.check_user(USER_ID, message)

    def test_identical_messages_trigger_ban(self):
        results = [self._send("Apa kabar pak") for _ in range(5)]

        assert all(r.passed for r in results[:4])
        assert results[4].violation_type == "identical_messages"

    def test_case_and_whitespace_count_as_identical(self):
        for message in ("halo", " HALO", "Halo ", "halo", "HALO"):
            result = self._send(message)
        assert result.passed is False

    def test_ban_blocks_any_message_until_expiry(self):
        for _ in range(5):
            self._send("Apa kabar pak")

        assert self._send("lampu mati").violation_type == "flood_banned"
        self.clock.advance(60)
        assert self._send("lampu mati").passed is True

    def test_rapid_messages_trigger_ban(self):
        for i in range(10):
            self.clock.advance(0.5)
            assert self.guard.check_user(USER_ID, f"pesan {i}").passed
        self.clock.advance(0.5)
        assert self.guard.check_user(USER_ID, "pesan 10").violation_type == "message_rate"

    def test_rate_window_slides(self):
        for i in range(10):
            self.guard.check_user(USER_ID, f"pesan {i}")
        self.clock.advance(11)
        assert self.guard.check_user(USER_ID, "pesan 10").passed is True

    def test_users_are_tracked_separately(self):
        for _ in range(4):
            self._send("Apa kabar pak")
        assert self.guard.check_user("6289999999999", "Apa kabar pak").passed is True

    def test_reset(self):
        for _ in range(4):
            self._send("Apa kabar pak")
        self.guard.reset(USER_ID)
        assert self._send("Apa kabar pak").passed is True

    def test_idle_users_are_forgotten(self):
        for i in range(5000):
            self.guard.check_user(f"62812{i:08d}", "halo")
        self.clock.advance(10_000)
        self._send("halo")

        assert self.guard.tracked_users == 1

    def test_banned_user_outlives_the_rate_window(self):
        for _ in range(5):
            self._send("Apa kabar pak")
        self.clock.advance(30)

        assert self.guard.tracked_users == 1
        assert self._send("lampu mati").violation_type == "flood_banned"

    def test_tracked_users_are_bounded(self):
        assert self.guard.traffic.max_size == MAX_TRACKED_USERS


class TestResponseGuardrail:
    def setup_method(self):
        self.guard = ResponseGuardrail(max_length=200)

    def test_clean_reply_unchanged(self):
        assert self.guard.validate("Baik Pak, laporan sudah dicatat.") == "Baik Pak, laporan sudah dicatat."

    def test_empty_reply(self):
        assert self.guard.validate("   ") == EMPTY_REPLY_TEXT

    def test_profanity_masked(self):
        assert self.guard.validate("Jangan bilang bodoh ya") == "Jangan bilang *** ya"

    def test_long_reply_truncated(self):
        assert self.guard.validate("a " * 200) == ("a " * 75) + TRUNCATION_NOTE

    def test_leaked_json_stripped(self):
        reply = 'Baik Pak, laporan sudah dicatat. {"intent": "QUESTION"}'
        assert self.guard.validate(reply) == "Baik Pak, laporan sudah dicatat."

    def test_reply_that_is_only_json(self):
        assert self.guard.validate('{"intent": "QUESTION", "reply_text": ""}') == BROKEN_REPLY_TEXT
        assert self.guard.validate("```json\n{}\n```") == BROKEN_REPLY_TEXT


class TestGuardrailPipeline:
    def test_content_checked_before_flood(self, guardrail_pipeline):
        violations = guardrail_pipeline.check_user_input(USER_ID, "https://spam.example")
        assert [v.violation_type for v in violations] == ["spam_content"]

    def test_is_spam(self, guardrail_pipeline, clock):
        assert not guardrail_pipeline.is_spam(USER_ID, "lampu jalan mati")
        assert guardrail_pipeline.is_spam(USER_ID, "")

    def test_check_reply(self, guardrail_pipeline):
        assert guardrail_pipeline.check_reply("") == EMPTY_REPLY_TEXT
