"""Shared test fixtures and helpers."""

import json
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import pytest

from src.config import AppConfig, CacheConfig, GuardrailConfig, ModelConfig, ServiceConfig
from src.conversation.confirmation import ConfirmationClassifier
from src.conversation.guardrails import GuardrailPipeline
from src.conversation.handlers import IntentHandlers, TurnContext
from src.conversation.orchestrator import TurnOrchestrator
from src.conversation.session_state import SessionStateStore
from src.errors import ModelCallError
from src.llm.call_planner import CallPlanner
from src.llm.credentials import CredentialDescriptor, CredentialPool
from src.llm.provider import ProviderResponse
from src.llm.usage_tracker import UsageTracker
from src.schemas.conversation_schema import Channel, HistoryMessage, TurnInput, TurnResult
from src.tools.case_store import InMemoryCaseService
from src.tools.knowledge_base import InMemoryKnowledgeService
from src.tools.message_log import InMemoryChannelService
from src.tools.profile_store import ProfileStore

USER_ID = "6281234567890"


def model_reply(intent: str, reply_text: str = "Baik Pak/Bu.", **fields: Any) -> str:
    """Raw provider text for a structured reply."""
    return json.dumps({"intent": intent, "fields": fields, "reply_text": reply_text})


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class ProviderCall:
    api_key: str
    model: str
    prompt: str
    response_schema: Optional[dict[str, Any]] = None


ScriptItem = Union[str, Exception]


class ScriptedProvider:
    """ModelProvider double that replays queued texts or raises queued errors."""

    def __init__(self, *responses: ScriptItem, default: Optional[ScriptItem] = None) -> None:
        self.responses: deque = deque(responses)
        self.default = default
        self.calls: list[ProviderCall] = []

    def queue(self, *responses: ScriptItem) -> None:
        self.responses.extend(responses)

    async def generate(
        self,
        api_key: str,
        model: str,
        prompt: str,
        response_schema: Optional[dict[str, Any]] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 2048,
    ) -> ProviderResponse:
        self.calls.append(ProviderCall(api_key, model, prompt, response_schema))
        item = self.responses.popleft() if self.responses else self.default
        if item is None:
            raise ModelCallError("Gemini API returned error 500: no scripted response")
        if isinstance(item, Exception):
            raise item
        return ProviderResponse(text=item, input_tokens=100, output_tokens=20, total_tokens=120)

    @property
    def prompts(self) -> list[str]:
        return [call.prompt for call in self.calls]


def env_credential(key_id: str = "env", api_key: str = "test-key") -> CredentialDescriptor:
    return CredentialDescriptor(key_id=key_id, name=key_id, api_key=api_key, tier="env")


def byok_credential(name: str, tier: str = "tier1") -> CredentialDescriptor:
    return CredentialDescriptor(
        key_id=f"byok-{name}", name=name, api_key=f"key-{name}", tier=tier, is_byok=True
    )


def make_config(**guardrail_overrides: Any) -> AppConfig:
    """Deterministic configuration, independent of the environment."""
    guardrails: dict[str, Any] = {
        "max_response_length": 4000,
        "spam_max_identical": 5,
        "spam_rate_max_messages": 10,
        "spam_rate_window_seconds": 10,
        "spam_ban_seconds": 60,
        "drain_timeout_seconds": 15,
        "force_llm_intent": False,
    }
    guardrails.update(guardrail_overrides)
    return AppConfig(
        model=ModelConfig(
            gemini_api_key="test-key",
            byok_keys="",
            full_nlu_models="",
            micro_nlu_models="",
            temperature=0.7,
            max_output_tokens=2048,
            timeout_seconds=5.0,
            micro_timeout_seconds=2.0,
            max_retries_per_model=2,
            base_retry_delay=1.0,
            max_retry_delay=5.0,
            json_retry_extra_delay=0.5,
        ),
        cache=CacheConfig(
            pending_state_ttl_seconds=600,
            history_ttl_seconds=60,
            complaint_type_ttl_seconds=300,
            service_search_ttl_seconds=300,
            sweep_interval_seconds=60,
            max_pending_photos=5,
        ),
        services=ServiceConfig(
            public_form_base_url="https://govconnect.test",
            history_fetch_limit=30,
        ),
        guardrails=GuardrailConfig(**guardrails),
        assistant_name="Gana",
        village_name="Desa Sukamaju",
    )


def make_planner(
    provider: ScriptedProvider,
    credentials: Optional[list[CredentialDescriptor]] = None,
    config: Optional[AppConfig] = None,
    sleeps: Optional[list[float]] = None,
    tracker: Optional[UsageTracker] = None,
    clock: Optional[ManualClock] = None,
) -> CallPlanner:
    recorded = sleeps if sleeps is not None else []

    async def sleep(seconds: float) -> None:
        recorded.append(seconds)

    pool = CredentialPool(
        credentials if credentials is not None else [env_credential()],
        clock=clock or ManualClock(),
    )
    return CallPlanner(
        provider,
        pool,
        tracker or UsageTracker(),
        model_config=(config or make_config()).model,
        sleep=sleep,
        rng=lambda: 0.0,
    )


@dataclass
class Harness:
    """The real orchestrator wired to in-memory collaborators."""

    orchestrator: TurnOrchestrator
    provider: ScriptedProvider
    cases: InMemoryCaseService
    knowledge: InMemoryKnowledgeService
    channel: InMemoryChannelService
    profiles: ProfileStore
    store: SessionStateStore
    handlers: IntentHandlers
    clock: ManualClock
    sleeps: list[float] = field(default_factory=list)

    async def send(
        self,
        message: str,
        user_id: str = USER_ID,
        channel: Channel = Channel.WHATSAPP,
        media_url: Optional[str] = None,
        history: Optional[list[HistoryMessage]] = None,
    ) -> TurnResult:
        self.clock.advance(2.0)
        return await self.orchestrator.process(
            TurnInput(
                user_id=user_id, channel=channel, message=message, media_url=media_url, history=history
            )
        )

    def context(self, message: str, user_id: str = USER_ID, channel: str = "whatsapp", **kwargs) -> TurnContext:
        return TurnContext(user_id=user_id, channel=channel, message=message, **kwargs)


def build_harness(
    provider: Optional[ScriptedProvider] = None,
    credentials: Optional[list[CredentialDescriptor]] = None,
    profile_name: Optional[str] = "Budi",
    user_id: str = USER_ID,
    config: Optional[AppConfig] = None,
) -> Harness:
    config = config or make_config()
    provider = provider or ScriptedProvider()
    clock = ManualClock()
    sleeps: list[float] = []
    planner = make_planner(provider, credentials, config, sleeps)
    store = SessionStateStore(config.cache)
    profiles = ProfileStore()
    if profile_name:
        profiles.save(user_id, name=profile_name)
    cases = InMemoryCaseService()
    knowledge = InMemoryKnowledgeService()
    channel = InMemoryChannelService()
    confirmation = ConfirmationClassifier(planner, models=["gemini-2.0-flash-lite"], timeout=2.0)
    handlers = IntentHandlers(store, cases, profiles, confirmation, services_config=config.services)
    orchestrator = TurnOrchestrator(
        planner,
        store,
        handlers,
        profiles,
        confirmation,
        guardrails=GuardrailPipeline(config.guardrails, clock=clock),
        knowledge=knowledge,
        channel=channel,
        config=config,
    )
    return Harness(
        orchestrator=orchestrator,
        provider=provider,
        cases=cases,
        knowledge=knowledge,
        channel=channel,
        profiles=profiles,
        store=store,
        handlers=handlers,
        clock=clock,
        sleeps=sleeps,
    )


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def harness(provider):
    return build_harness(provider)


@pytest.fixture
def guardrail_pipeline(clock):
    return GuardrailPipeline(make_config().guardrails, clock=clock)
