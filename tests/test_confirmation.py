"""Tests for the yes/no confirmation classifier."""

import json

import pytest

from src.conversation.confirmation import (
    ConfirmationClassifier,
    ConfirmationDecision,
    is_confirmation,
    is_rejection,
    parse_confirmation_output,
)
from src.errors import MalformedOutputError
from tests.conftest import ScriptedProvider, make_planner


def _answer(decision: str, confidence: float = 0.9) -> str:
    return json.dumps({"decision": decision, "confidence": confidence, "reason": "scripted"})


class TestRegexAnswers:
    @pytest.mark.parametrize("message", ["ya", "Oke!", "lanjutkan", "ya, proses", "sudah cukup", "gak usah"])
    def test_confirmations(self, message):
        assert is_confirmation(message)

    @pytest.mark.parametrize("message", ["tidak", "Bukan.", "batal", "gak jadi", "salah nama saya"])
    def test_rejections(self, message):
        assert is_rejection(message)

    def test_sentence_is_neither(self):
        assert not is_confirmation("ya tapi nanti saja")
        assert not is_rejection("tidak tahu ya")


class TestParseOutput:
    def test_fenced_json(self):
        result = parse_confirmation_output('```json\n{"decision": "reject", "confidence": 1.4}\n```')
        assert result.decision == ConfirmationDecision.REJECT
        assert result.confidence == 1.0
        assert result.source == "model"

    def test_not_json(self):
        with pytest.raises(MalformedOutputError, match="JSON parsing failed"):
            parse_confirmation_output("CONFIRM")

    def test_missing_confidence(self):
        with pytest.raises(MalformedOutputError, match="Invalid confirmation response"):
            parse_confirmation_output('{"decision": "CONFIRM"}')

    def test_unknown_decision(self):
        with pytest.raises(MalformedOutputError, match="Unknown confirmation decision"):
            parse_confirmation_output('{"decision": "MAYBE", "confidence": 0.5}')


class TestConfirmationClassifier:
    def setup_method(self):
        self.provider = ScriptedProvider()
        self.classifier = ConfirmationClassifier(
            make_planner(self.provider), models=["gemini-2.0-flash-lite"], timeout=2.0
        )

    @pytest.mark.asyncio
    async def test_regex_answer_skips_model(self):
        result = await self.classifier.classify("iya")
        assert result.decision == ConfirmationDecision.CONFIRM
        assert self.provider.calls == []

    @pytest.mark.asyncio
    async def test_free_text_goes_to_micro_model(self):
        self.provider.queue(_answer("CONFIRM"))

        result = await self.classifier.classify("mana linknya?")

        assert result.decision == ConfirmationDecision.CONFIRM
        assert result.source == "model"
        call = self.provider.calls[0]
        assert call.model == "gemini-2.0-flash-lite"
        assert call.response_schema is None
        assert call.prompt.endswith("mana linknya?\n")

    @pytest.mark.asyncio
    async def test_malformed_answer_is_retried(self):
        self.provider.queue("CONFIRM", _answer("REJECT"))

        result = await self.classifier.classify("nanti kapan-kapan aja")

        assert result.decision == ConfirmationDecision.REJECT
        assert len(self.provider.calls) == 2

    @pytest.mark.asyncio
    async def test_exhaustion_is_uncertain(self):
        result = await self.classifier.classify("hmm gimana ya")

        assert result.decision == ConfirmationDecision.UNCERTAIN
        assert result.source == "default"

    @pytest.mark.asyncio
    async def test_without_planner(self):
        result = await ConfirmationClassifier(models=["m"], timeout=1.0).classify("mungkin")
        assert result.decision == ConfirmationDecision.UNCERTAIN
