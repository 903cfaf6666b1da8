"""Tests for prompt assembly and tone detection."""

import pytest

from src.prompts.prompt_templates import (
    HISTORY_WINDOW,
    build_history_section,
    build_knowledge_section,
    build_prompt,
    build_signal_lines,
    detect_language,
    detect_sentiment,
)
from src.prompts.system_prompts import (
    FIRST_CONVERSATION_NOTE,
    KNOWLEDGE_HEADER,
    LAST_MESSAGE_HEADER,
    SYSTEM_PROMPT,
)
from src.schemas.case_schema import KnowledgeResult
from src.schemas.conversation_schema import HistoryMessage, Role


class TestToneDetection:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("lambat banget pelayanannya!!", "angry"),
            ("pohon tumbang menutup jalan, tolong segera", "urgent"),
            ("laporan saya belum juga ditangani", "negative"),
            ("mantap pelayanannya", "positive"),
            ("cek status laporan", "neutral"),
        ],
    )
    def test_sentiment(self, message, expected):
        assert detect_sentiment(message) == expected

    def test_language(self):
        assert detect_language("matur nuwun pak") == "jawa"
        assert detect_language("punten, kantor desa dimana") == "sunda"
        assert detect_language("where is the office please") == "english"
        assert detect_language("kantor desa buka jam berapa") is None


class TestSections:
    def test_first_conversation(self):
        assert build_history_section([]) == FIRST_CONVERSATION_NOTE

    def test_history_window(self):
        history = [HistoryMessage(role=Role.USER, content=f"pesan {i}") for i in range(15)]
        lines = build_history_section(history).splitlines()
        assert len(lines) == HISTORY_WINDOW
        assert lines[-1] == "User: pesan 14"

    def test_assistant_lines(self):
        history = [HistoryMessage(role=Role.ASSISTANT, content="Ada yang bisa dibantu?")]
        assert build_history_section(history) == "Assistant: Ada yang bisa dibantu?"

    def test_empty_knowledge_adds_nothing(self):
        assert build_knowledge_section(None) == ""
        assert build_knowledge_section(KnowledgeResult(context="   ")) == ""

    def test_knowledge_confidence_line(self):
        section = build_knowledge_section(KnowledgeResult(context="Buka 08.00", confidence="high"))
        assert section.startswith(f"\n\n{KNOWLEDGE_HEADER}\nBuka 08.00")
        assert section.endswith("[CONFIDENCE: TINGGI - informasi cocok dengan pertanyaan]")

    def test_unknown_confidence_is_low(self):
        section = build_knowledge_section(KnowledgeResult(context="x", confidence="weird"))
        assert "[CONFIDENCE: RENDAH" in section

    def test_signal_lines(self):
        lines = build_signal_lines("banjir parah, segera tolong", profile_name="Budi")
        assert lines[0].startswith("[SENTIMEN: ANGRY]")
        assert lines[-1].startswith("[PROFIL] Nama warga: Budi.")

    def test_neutral_message_has_no_signals(self):
        assert build_signal_lines("cek status laporan") == []


class TestBuildPrompt:
    def test_layout(self):
        prompt = build_prompt(
            "  jam buka kantor?  ",
            history=[HistoryMessage(role=Role.USER, content="halo")],
            knowledge=KnowledgeResult(context="Senin-Jumat 08.00-15.00"),
        )

        assert prompt.startswith(SYSTEM_PROMPT + f"\n\n{KNOWLEDGE_HEADER}")
        assert "RIWAYAT PERCAKAPAN:\nUser: halo" in prompt
        assert prompt.endswith(f"{LAST_MESSAGE_HEADER}\njam buka kantor?")

    def test_no_knowledge_header_without_knowledge(self):
        assert KNOWLEDGE_HEADER not in build_prompt("halo")
