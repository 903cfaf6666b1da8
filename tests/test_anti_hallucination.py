"""Tests for the anti-hallucination gate."""

import pytest

from src.conversation.anti_hallucination import (
    AntiHallucinationGate,
    append_correction,
    detect_signals,
    has_knowledge_in_prompt,
    needs_retry,
    sanitize_fake_links,
)
from src.llm.response_parser import parse_model_output
from tests.conftest import ScriptedProvider, make_planner, model_reply

PLAIN_PROMPT = "Kamu adalah asisten GovConnect.\nPesan warga: kantor buka jam berapa?"
KNOWLEDGE_PROMPT = PLAIN_PROMPT + "\n\nKNOWLEDGE BASE YANG TERSEDIA:\n[jadwal] Senin-Jumat 08.00-15.00"


class TestSignals:
    def test_office_hours(self):
        assert detect_signals("Kantor buka pukul 08.00").office_hours
        assert detect_signals("buka Senin sampai Jumat").office_hours

    def test_cost(self):
        signals = detect_signals("Biayanya Rp 10.000")
        assert signals.cost and not signals.office_hours

    def test_fake_links(self):
        assert detect_signals("Silakan isi [link formulir] berikut").fake_links
        assert detect_signals("kunjungi https://[website-desa]").fake_links

    def test_empty_text(self):
        assert detect_signals(None) == detect_signals("")

    def test_knowledge_markers(self):
        assert has_knowledge_in_prompt(KNOWLEDGE_PROMPT)
        assert has_knowledge_in_prompt("... [CONFIDENCE: high]")
        assert not has_knowledge_in_prompt(PLAIN_PROMPT)


class TestNeedsRetry:
    def test_hours_without_knowledge(self):
        assert needs_retry("Kantor buka pukul 08.00", "", False) == (
            True,
            "Menyebut jam operasional tanpa knowledge",
        )

    def test_hours_and_cost_reason(self):
        _, reason = needs_retry("Buka pukul 8", "biayanya gratis", False)
        assert reason == "Menyebut jam operasional dan biaya tanpa knowledge"

    def test_grounded_hours_pass(self):
        assert needs_retry("Kantor buka pukul 08.00", "", True) == (False, None)

    def test_fake_link_always_retries(self):
        assert needs_retry("Isi [link formulir] ya", "", True) == (True, "Menyebut link palsu/placeholder")

    def test_neutral_reply(self):
        assert needs_retry("Silakan datang ke kantor desa.", None, False) == (False, None)

    def test_correction_block_appended(self):
        assert append_correction("prompt").startswith("prompt\n\nKOREKSI WAJIB")


class TestSanitizeFakeLinks:
    def test_placeholder_sentence_removed(self):
        assert sanitize_fake_links("Isi [formulir pengaduan] ya. Terima kasih.") == "Terima kasih."

    def test_link_tag_removed(self):
        assert "[link" not in sanitize_fake_links("Cek di sini [link cek status]")

    def test_clean_text_unchanged(self):
        assert sanitize_fake_links("Baik Pak, laporan diterima.") == "Baik Pak, laporan diterima."

    def test_none(self):
        assert sanitize_fake_links(None) == ""


class TestGate:
    def setup_method(self):
        self.provider = ScriptedProvider()
        self.gate = AntiHallucinationGate(make_planner(self.provider))
        self.invented = parse_model_output(
            model_reply("QUESTION", reply_text="Kantor buka pukul 08.00 setiap hari.")
        )

    @pytest.mark.asyncio
    async def test_grounded_reply_is_kept(self):
        result = await self.gate.review(self.invented, KNOWLEDGE_PROMPT)

        assert not result.retried
        assert result.reply.reply_text == "Kantor buka pukul 08.00 setiap hari."
        assert self.provider.calls == []

    @pytest.mark.asyncio
    async def test_invented_hours_are_regenerated(self):
        self.provider.queue(model_reply("QUESTION", reply_text="Untuk jam, saya belum dapat info pastinya."))

        result = await self.gate.review(self.invented, PLAIN_PROMPT)

        assert result.retried and result.replaced
        assert result.reason == "Menyebut jam operasional tanpa knowledge"
        assert result.reply.reply_text == "Untuk jam, saya belum dapat info pastinya."
        assert "KOREKSI WAJIB" in self.provider.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_retry_keeps_candidate(self):
        self.provider.queue(model_reply("QUESTION", reply_text="   "))

        result = await self.gate.review(self.invented, PLAIN_PROMPT)

        assert result.retried and not result.replaced
        assert result.reply.reply_text == "Kantor buka pukul 08.00 setiap hari."
        assert len(self.provider.calls) == 1

    @pytest.mark.asyncio
    async def test_failed_retry_keeps_sanitized_candidate(self):
        candidate = parse_model_output(
            model_reply("QUESTION", reply_text="Isi [formulir pengaduan] ya. Kami siap membantu.")
        )

        result = await self.gate.review(candidate, KNOWLEDGE_PROMPT)

        assert result.retried and not result.replaced
        assert result.reply.reply_text == "Kami siap membantu."
