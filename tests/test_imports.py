"""Tests for import chains and module integrity.

Ensures all public modules can be imported without errors and
that re-exports from __init__.py files work correctly.
"""

import pytest


class TestSchemaImports:
    def test_import_conversation_schema(self):
        from src.schemas.conversation_schema import Channel, HistoryMessage, Role, TurnInput, TurnResult
        assert Channel.WEBCHAT == "webchat"
        assert Role.USER == "user"
        assert TurnResult is not None

    def test_import_model_reply(self):
        from src.schemas.model_reply import MODEL_REPLY_ADAPTER, RESPONSE_JSON_SCHEMA, Intent
        assert len(Intent) == 12
        assert RESPONSE_JSON_SCHEMA["required"] == ["intent", "fields", "reply_text"]
        assert MODEL_REPLY_ADAPTER is not None

    def test_import_case_schema(self):
        from src.schemas.case_schema import CaseStatus, ComplaintDraft, ServiceInfo
        assert ServiceInfo(slug="sku", name="SKU").is_online

    def test_import_citizen_profile(self):
        from src.schemas.customer_schema import CitizenProfile
        assert CitizenProfile is not None


class TestConversationImports:
    def test_import_conversation_package(self):
        from src.conversation import (
            GuardrailPipeline, IntentHandlers, SessionStateStore, TurnOrchestrator,
            build_orchestrator, classify,
        )
        assert callable(build_orchestrator)
        assert classify("halo").intent == "GREETING"

    def test_import_templates(self):
        from src.conversation.templates import FALLBACK_TEMPLATES, PENDING_SLOT_PROMPTS
        assert "UNKNOWN" in FALLBACK_TEMPLATES
        assert list(PENDING_SLOT_PROMPTS)[0] == "address_confirmation"


class TestLlmImports:
    def test_import_llm_package(self):
        from src.llm import CallPlanner, CredentialPool, GeminiProvider, UsageTracker
        assert CredentialPool([]).usable() == []

    def test_import_model_catalog(self):
        from src.llm.model_catalog import MODEL_FALLBACK_ORDER_PAID
        assert len(MODEL_FALLBACK_ORDER_PAID) >= 3


class TestClientImports:
    def test_import_clients_package(self):
        from src.clients import (
            CaseService, CaseServiceClient, ChannelServiceClient, KnowledgeServiceClient,
        )
        assert CaseServiceClient is not None

    def test_import_in_memory_tools(self):
        from src.tools.case_store import InMemoryCaseService
        from src.tools.knowledge_base import InMemoryKnowledgeService
        from src.tools.message_log import InMemoryChannelService
        from src.tools.profile_store import ProfileStore
        assert InMemoryCaseService is not None


class TestPromptImports:
    def test_import_system_prompts(self):
        from src.prompts.system_prompts import KNOWLEDGE_HEADER, SYSTEM_PROMPT
        assert KNOWLEDGE_HEADER == "KNOWLEDGE BASE YANG TERSEDIA:"
        assert KNOWLEDGE_HEADER not in SYSTEM_PROMPT

    def test_import_prompt_templates(self):
        from src.prompts.prompt_templates import build_prompt, detect_sentiment
        assert callable(build_prompt)


class TestConfigImport:
    def test_import_config(self):
        from src.config import settings
        assert settings.model.max_retries_per_model >= 1
        assert settings.cache.pending_state_ttl_seconds > 0
        assert settings.guardrails.spam_max_identical >= 2


class TestLoggingContext:
    def test_turn_id_attached_to_records(self):
        import logging

        from src.logging_context import TurnIdFilter, new_turn_id, set_turn_id

        turn_id = new_turn_id("6281234567890")
        set_turn_id(turn_id)
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)

        assert TurnIdFilter().filter(record)
        assert record.turn_id == turn_id
        assert turn_id.startswith("6281234567890:")


class TestConsoleDemo:
    def test_console_session_imports(self):
        from console_demo import ConsoleSession
        session = ConsoleSession()
        assert session.last_case is None
        assert "complaint" in session.SCENARIOS

    @pytest.mark.asyncio
    async def test_console_scenario_files_a_complaint(self):
        from console_demo import ConsoleSession
        from src.schemas.conversation_schema import TurnInput

        session = ConsoleSession()
        for message in ("nama saya Budi", "lampu jalan mati di jalan merdeka no 5"):
            result = await session.orchestrator.process(
                TurnInput(user_id=session.user_id, message=message)
            )
        assert "LAP-" in result.response_text
