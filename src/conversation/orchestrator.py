"""
Turn orchestrator: one citizen message in, one ``TurnResult`` out.

The pipeline is strictly ordered and the first step that produces a reply
wins:

    spam guard -> history + pending name -> name gate -> farewell
    -> pending slots -> tracking code -> fast classifier -> model path

Only the last step calls the model. Every exception is caught in
``process`` and turned into an apologetic ``success=False`` reply; the
in-flight counter is what ``drain`` waits on during shutdown.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from src.clients.case_client import CaseServiceClient
from src.clients.channel_client import ChannelServiceClient
from src.clients.interfaces import CaseService, ChannelService, KnowledgeService
from src.clients.knowledge_client import KnowledgeServiceClient
from src.config import AppConfig, settings
from src.conversation.anti_hallucination import AntiHallucinationGate
from src.conversation.confirmation import ConfirmationClassifier, ConfirmationDecision
from src.conversation.fast_classifier import (
    CONFIRMATION,
    REJECTION,
    THANKS,
    ClassificationResult,
    classify,
    extract_ids,
)
from src.conversation.guardrails import GuardrailPipeline
from src.conversation.handlers import HandlerReply, IntentHandlers, TurnContext, is_service_inquiry
from src.conversation.intent_patterns import (
    CANCEL_PATTERNS,
    CANCEL_SERVICE_PATTERNS,
    GREETING_PATTERNS,
    THANKS_PATTERNS,
    UPDATE_COMPLAINT_PATTERNS,
    UPDATE_SERVICE_REQUEST_PATTERNS,
    matches_any,
)
from src.conversation.name_gate import (
    ASK_CORRECT_NAME,
    ASK_NAME,
    ASK_NAME_AGAIN,
    ASK_NAME_WELCOME,
    CONFIRM_NAME,
    CONFIRM_NAME_AGAIN,
    NAME_THANKS,
    extract_name,
    extract_name_from_history,
    is_explicit_name,
    was_name_prompted,
)
from src.conversation.session_state import SessionStateStore
from src.conversation.templates import (
    DEFAULT_ERROR_TEXT,
    FAREWELL_TEXT,
    PENDING_SLOT_PROMPTS,
    classify_error_text,
    error_fallback,
    fallback_for_intent,
)
from src.errors import DownstreamError, ErrorKind, PlanExhaustedError
from src.llm.call_planner import CallPlanner
from src.llm.credentials import CredentialPool
from src.llm.provider import GeminiProvider, ModelProvider
from src.llm.usage_tracker import UsageTracker
from src.logging_context import get_turn_logger, new_turn_id, set_turn_id
from src.prompts.prompt_templates import build_prompt
from src.schemas.case_schema import KnowledgeResult
from src.schemas.conversation_schema import Channel, HistoryMessage, Role, TurnInput, TurnResult
from src.schemas.model_reply import (
    KNOWLEDGE_DEPENDENT_INTENTS,
    MODEL_REPLY_ADAPTER,
    Intent,
    ModelReply,
)
from src.schemas.slots import AwaitingName
from src.tools.profile_store import ProfileStore
from src.utils import elapsed_ms

logger = get_turn_logger(__name__)

PHOTO_ONLY_MESSAGE = "[Mengirim foto]"
MAX_FAREWELL_LENGTH = 30
DRAIN_POLL_SECONDS = 0.5

OFFICE_INFO_RE = re.compile(
    r"(alamat|lokasi|maps|google\s*maps|jam|operasional|buka|tutup|nomor|kontak|telepon|telp|hubungi)",
    re.IGNORECASE,
)
_FAREWELL_RE = re.compile(r"^(bye|dadah|sampai\s+jumpa|selamat\s+tinggal)[\s!.,]*$", re.IGNORECASE)


def _wants_update(message: str) -> bool:
    """Update words next to a tracking code send the turn to the model."""
    return matches_any(message, UPDATE_COMPLAINT_PATTERNS) or matches_any(
        message, UPDATE_SERVICE_REQUEST_PATTERNS
    )


@dataclass
class _Outcome:
    """Reply of one pipeline step before validation."""

    intent: str
    reply: HandlerReply
    path: str
    metadata: dict[str, Any] = field(default_factory=dict)


class TurnOrchestrator:
    """Processes citizen turns against an injected store graph."""

    def __init__(
        self,
        planner: CallPlanner,
        store: SessionStateStore,
        handlers: IntentHandlers,
        profiles: ProfileStore,
        confirmation: ConfirmationClassifier,
        guardrails: Optional[GuardrailPipeline] = None,
        knowledge: Optional[KnowledgeService] = None,
        channel: Optional[ChannelService] = None,
        config: Optional[AppConfig] = None,
    ) -> None:
        self.planner = planner
        self.store = store
        self.handlers = handlers
        self.profiles = profiles
        self.confirmation = confirmation
        self.config = config or settings
        self.guardrails = guardrails or GuardrailPipeline(self.config.guardrails)
        self.knowledge = knowledge
        self.channel = channel
        self.gate = AntiHallucinationGate(planner)
        self.store.sweeper.register(self.guardrails.flood.traffic)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    async def process(self, turn: TurnInput) -> TurnResult:
        """Answer one message. Never raises."""
        turn_id = new_turn_id(turn.user_id)
        set_turn_id(turn_id)
        started = time.monotonic()
        message = turn.message.strip() or (PHOTO_ONLY_MESSAGE if turn.media_url else "")
        logger.info("Turn started for %s via %s: %r", turn.user_id, turn.channel.value, message[:80])
        self._in_flight += 1
        try:
            self._ensure_sweeper()
            result = await self._process(turn, message)
        except Exception as e:
            logger.exception("Turn failed for %s: %s", turn.user_id, e)
            result = self._boundary_fallback(turn.user_id, message, e)
        finally:
            self._in_flight -= 1

        result.metadata.update({"turn_id": turn_id, "processing_time_ms": elapsed_ms(started)})
        logger.info(
            "Turn finished for %s: intent=%s success=%s in %dms",
            turn.user_id, result.intent, result.success, result.metadata["processing_time_ms"],
        )
        return result

    async def drain(self, max_wait: Optional[float] = None) -> bool:
        """Wait for in-flight turns to finish; False when ``max_wait`` ran out."""
        if max_wait is None:
            max_wait = self.config.guardrails.drain_timeout_seconds
        deadline = time.monotonic() + max_wait
        while self._in_flight > 0:
            if time.monotonic() >= deadline:
                logger.warning("Drain timed out with %d turn(s) in flight", self._in_flight)
                return False
            await asyncio.sleep(DRAIN_POLL_SECONDS)
        return True

    async def close(self, max_wait: Optional[float] = None) -> bool:
        """Drain in-flight turns, then stop the cache sweep."""
        drained = await self.drain(max_wait)
        await self.store.sweeper.stop()
        return drained

    def _ensure_sweeper(self) -> None:
        """Start the periodic cache sweep on the first turn's event loop."""
        if not self.store.sweeper.running:
            self.store.sweeper.start()
            logger.info("Cache sweeper started over %d caches", len(self.store.sweeper.caches))

    async def _process(self, turn: TurnInput, message: str) -> TurnResult:
        user_id = turn.user_id
        if self.guardrails.is_spam(user_id, message):
            return TurnResult(
                success=False,
                response_text="",
                intent="SPAM",
                error=ErrorKind.SPAM_REJECTED.value,
            )

        history = await self._load_history(turn)
        ctx = TurnContext(
            user_id=user_id,
            channel=turn.channel.value,
            message=message,
            media_url=turn.media_url,
            history=history,
        )

        outcome = (
            await self._pending_name(ctx)
            or self._name_gate(ctx)
            or self._farewell(ctx)
            or await self._pending_slots(ctx)
            or await self._tracking_code(ctx)
        )
        if outcome is None:
            fast = classify(message)
            outcome = await self._fast_path(ctx, fast)
            if outcome is None:
                outcome = await self._model_path(ctx, fast)

        text = self.guardrails.check_reply(outcome.reply.text)
        guidance = self.guardrails.check_reply(outcome.reply.guidance) if outcome.reply.guidance else None
        self._remember_turn(user_id, history, message, text)
        return TurnResult(
            success=True,
            response_text=text,
            guidance_text=guidance,
            intent=outcome.intent,
            fields=outcome.reply.fields,
            metadata={"path": outcome.path, **outcome.metadata},
        )

    # ------------------------------------------------------------------ #
    # History
    # ------------------------------------------------------------------ #

    async def _load_history(self, turn: TurnInput) -> list[HistoryMessage]:
        if turn.history is not None:
            return list(turn.history)
        cached = self.store.history.get(turn.user_id)
        if cached is not None:
            return list(cached)
        if turn.channel != Channel.WHATSAPP or self.channel is None:
            return []
        try:
            history = await self.channel.fetch_history(
                turn.user_id, limit=self.config.services.history_fetch_limit
            )
        except DownstreamError as e:
            logger.warning("History unavailable for %s: %s", turn.user_id, e)
            return []
        self.store.history.set(turn.user_id, history)
        return list(history)

    def _remember_turn(self, user_id: str, history: list[HistoryMessage], message: str, reply: str) -> None:
        now = time.time()
        updated = history + [
            HistoryMessage(role=Role.USER, content=message, timestamp=now),
            HistoryMessage(role=Role.ASSISTANT, content=reply, timestamp=now),
        ]
        self.store.history.set(user_id, updated[-self.config.services.history_fetch_limit:])

    # ------------------------------------------------------------------ #
    # Name
    # ------------------------------------------------------------------ #

    async def _pending_name(self, ctx: TurnContext) -> Optional[_Outcome]:
        slot = self.store.get_name_confirmation(ctx.user_id)
        if slot is None:
            return None
        result = await self.confirmation.classify(ctx.message)
        if result.decision == ConfirmationDecision.CONFIRM:
            self.store.clear_name_confirmation(ctx.user_id)
            self.profiles.save(ctx.user_id, name=slot.name)
            return _Outcome("NAME_CONFIRMED", HandlerReply(NAME_THANKS.format(name=slot.name)), "name")
        if result.decision == ConfirmationDecision.REJECT:
            self.store.clear_name_confirmation(ctx.user_id)
            return _Outcome("ASK_NAME", HandlerReply(ASK_CORRECT_NAME), "name")
        return _Outcome(
            "NAME_CONFIRMATION", HandlerReply(CONFIRM_NAME_AGAIN.format(name=slot.name)), "name"
        )

    def _name_gate(self, ctx: TurnContext) -> Optional[_Outcome]:
        if self.profiles.get_name(ctx.user_id):
            return None
        known = extract_name_from_history(ctx.history)
        if known:
            self.profiles.save(ctx.user_id, name=known)
            return None

        candidate = extract_name(ctx.message)
        if candidate and is_explicit_name(ctx.message):
            self.profiles.save(ctx.user_id, name=candidate)
            return _Outcome("NAME_CONFIRMED", HandlerReply(NAME_THANKS.format(name=candidate)), "name")

        prompted = was_name_prompted(ctx.history)
        if candidate and prompted:
            self.store.set_name_confirmation(ctx.user_id, AwaitingName(name=candidate))
            return _Outcome("NAME_CONFIRMATION", HandlerReply(CONFIRM_NAME.format(name=candidate)), "name")
        if prompted:
            return _Outcome("ASK_NAME", HandlerReply(ASK_NAME_AGAIN), "name")
        if matches_any(ctx.message, GREETING_PATTERNS):
            text = ASK_NAME_WELCOME.format(village=self.config.village_name)
        else:
            text = ASK_NAME
        return _Outcome("ASK_NAME", HandlerReply(text), "name")

    def _farewell(self, ctx: TurnContext) -> Optional[_Outcome]:
        message = ctx.message.strip()
        if len(message) > MAX_FAREWELL_LENGTH:
            return None
        if matches_any(message, THANKS_PATTERNS) or _FAREWELL_RE.match(message):
            return _Outcome("FAREWELL", HandlerReply(FAREWELL_TEXT), "farewell")
        return None

    # ------------------------------------------------------------------ #
    # Deterministic paths
    # ------------------------------------------------------------------ #

    async def _pending_slots(self, ctx: TurnContext) -> Optional[_Outcome]:
        user_id = ctx.user_id

        offer = self.store.get_service_form_offer(user_id)
        if offer is not None:
            reply = await self.handlers.handle_service_form_offer(ctx, offer)
            return _Outcome(Intent.CREATE_SERVICE_REQUEST.value, reply, "slot:service_form_offer")

        confirmation = self.store.get_address_confirmation(user_id)
        if confirmation is not None:
            reply = await self.handlers.handle_address_confirmation(ctx, confirmation)
            return _Outcome(Intent.CREATE_COMPLAINT.value, reply, "slot:address_confirmation")

        request = self.store.get_address_request(user_id)
        if request is not None:
            reply = await self.handlers.handle_address_request(ctx, request)
            if reply is not None:
                return _Outcome(Intent.CREATE_COMPLAINT.value, reply, "slot:address_request")

        cancel = self.store.get_cancel_confirmation(user_id)
        if cancel is not None:
            reply = await self.handlers.handle_cancel_confirmation(ctx, cancel)
            intent = Intent.CANCEL_COMPLAINT if cancel.target_type == "complaint" else Intent.CANCEL_SERVICE_REQUEST
            return _Outcome(intent.value, reply, "slot:cancel_confirmation")

        contact = self.store.get_complaint_contact(user_id)
        if contact is not None:
            reply = await self.handlers.handle_complaint_contact(ctx, contact)
            return _Outcome(Intent.CREATE_COMPLAINT.value, reply, "slot:complaint_contact")
        return None

    async def _tracking_code(self, ctx: TurnContext) -> Optional[_Outcome]:
        ids = extract_ids(ctx.message)
        if not ids:
            return None
        if matches_any(ctx.message, CANCEL_PATTERNS) or matches_any(ctx.message, CANCEL_SERVICE_PATTERNS):
            return self._cancel_request(ctx, ids)
        if _wants_update(ctx.message):
            return None
        reply = await self.handlers.handle_check_status(
            ctx, ids.get("complaint_id", ""), ids.get("request_number", "")
        )
        return _Outcome(Intent.CHECK_STATUS.value, reply, "tracking_code")

    def _cancel_request(self, ctx: TurnContext, ids: dict[str, str], reason: str = "") -> _Outcome:
        if ids.get("request_number") and not ids.get("complaint_id"):
            reply = self.handlers.request_cancel(ctx, "service", ids["request_number"], reason)
            return _Outcome(Intent.CANCEL_SERVICE_REQUEST.value, reply, "tracking_code")
        reply = self.handlers.request_cancel(ctx, "complaint", ids.get("complaint_id", ""), reason)
        return _Outcome(Intent.CANCEL_COMPLAINT.value, reply, "tracking_code")

    async def _fast_path(self, ctx: TurnContext, fast: ClassificationResult) -> Optional[_Outcome]:
        if not fast.skip_model or self.config.guardrails.force_llm_intent:
            return None
        logger.info("Fast path: %s (%s)", fast.intent, fast.reason)
        metadata = {"fast_confidence": fast.confidence}
        if fast.intent in (CONFIRMATION, REJECTION, THANKS):
            return _Outcome(fast.intent, self.handlers.quick_reply(fast.intent), "fast", metadata)
        if fast.intent == Intent.HISTORY.value:
            return _Outcome(fast.intent, await self.handlers.handle_history(ctx), "fast", metadata)
        return None

    # ------------------------------------------------------------------ #
    # Model path
    # ------------------------------------------------------------------ #

    async def _search_knowledge(self, ctx: TurnContext, category: str = "") -> Optional[KnowledgeResult]:
        if self.knowledge is None:
            return None
        try:
            result = await self.knowledge.search(ctx.message, [category] if category else None)
        except DownstreamError as e:
            logger.warning("Knowledge search failed: %s", e)
            return None
        logger.info("Knowledge search returned %d result(s)", result.total)
        return result

    async def _call_model(self, prompt: str) -> tuple[ModelReply, dict[str, Any]]:
        outcome = await self.planner.execute(prompt)
        if not outcome.ok:
            raise PlanExhaustedError(outcome.attempts, outcome.last_error)
        return outcome.value, outcome.metrics.as_dict()

    def _route_overrides(self, reply: ModelReply, message: str) -> ModelReply:
        """Correct intents the model commonly confuses."""
        intent = reply.intent
        if intent in (Intent.QUESTION.value, Intent.UNKNOWN.value) and OFFICE_INFO_RE.search(message):
            logger.info("Office-info question rerouted from %s to KNOWLEDGE_QUERY", intent)
            return self._retag(reply, Intent.KNOWLEDGE_QUERY, {})
        if intent == Intent.CREATE_SERVICE_REQUEST.value and is_service_inquiry(message):
            logger.info("Service request rerouted to SERVICE_INFO (inquiry)")
            return self._retag(reply, Intent.SERVICE_INFO, reply.fields.model_dump())
        return reply

    @staticmethod
    def _retag(reply: ModelReply, intent: Intent, fields: dict[str, Any]) -> ModelReply:
        data = reply.model_dump(exclude={"intent", "fields"})
        return MODEL_REPLY_ADAPTER.validate_python({**data, "intent": intent.value, "fields": fields})

    async def _model_path(self, ctx: TurnContext, fast: ClassificationResult) -> _Outcome:
        profile_name = self.profiles.get_name(ctx.user_id)
        knowledge: Optional[KnowledgeResult] = None
        if fast.intent == Intent.KNOWLEDGE_QUERY.value or OFFICE_INFO_RE.search(ctx.message):
            knowledge = await self._search_knowledge(ctx, fast.extracted_fields.get("knowledge_category", ""))

        prompt = build_prompt(ctx.message, ctx.history, knowledge, profile_name)
        reply, metrics = await self._call_model(prompt)
        reply = self._route_overrides(reply, ctx.message)

        wants_knowledge = reply.needs_knowledge or reply.intent == Intent.KNOWLEDGE_QUERY.value
        if wants_knowledge and knowledge is None:
            category = getattr(reply.fields, "knowledge_category", "")
            knowledge = await self._search_knowledge(ctx, category)
            if knowledge is not None and knowledge.context:
                enriched = build_prompt(ctx.message, ctx.history, knowledge, profile_name)
                try:
                    second, metrics_second = await self._call_model(enriched)
                except PlanExhaustedError as e:
                    # The first reply is still valid; answer without the knowledge.
                    logger.warning("Knowledge pass failed for %s, keeping first reply: %s", ctx.user_id, e)
                    knowledge = None
                else:
                    prompt, metrics = enriched, metrics_second
                    reply = self._route_overrides(second, ctx.message)

        gate_metadata: dict[str, Any] = {}
        if Intent(reply.intent) in KNOWLEDGE_DEPENDENT_INTENTS:
            gated = await self.gate.review(reply, prompt, user_id=ctx.user_id)
            reply = gated.reply
            gate_metadata = {"gate_retried": gated.retried, "gate_replaced": gated.replaced}

        handler_reply = await self._dispatch(ctx, reply, knowledge)
        if not handler_reply.guidance and reply.guidance_text:
            handler_reply.guidance = reply.guidance_text
        if not handler_reply.fields:
            handler_reply.fields = reply.fields_dict()
        return _Outcome(reply.intent, handler_reply, "model", {**metrics, **gate_metadata})

    async def _dispatch(
        self, ctx: TurnContext, reply: ModelReply, knowledge: Optional[KnowledgeResult]
    ) -> HandlerReply:
        intent = Intent(reply.intent)
        fields = reply.fields
        ids = extract_ids(ctx.message)

        if intent == Intent.CREATE_COMPLAINT:
            return await self.handlers.handle_create_complaint(ctx, fields)
        if intent == Intent.UPDATE_COMPLAINT:
            if not fields.complaint_id and ids.get("complaint_id"):
                fields = fields.model_copy(update={"complaint_id": ids["complaint_id"]})
            return await self.handlers.handle_update_complaint(ctx, fields)
        if intent == Intent.CANCEL_COMPLAINT:
            case_id = fields.complaint_id or ids.get("complaint_id", "")
            return self.handlers.request_cancel(ctx, "complaint", case_id, fields.cancel_reason)
        if intent == Intent.CANCEL_SERVICE_REQUEST:
            case_id = fields.request_number or ids.get("request_number", "")
            return self.handlers.request_cancel(ctx, "service", case_id, fields.cancel_reason)
        if intent == Intent.CHECK_STATUS:
            return await self.handlers.handle_check_status(
                ctx,
                fields.complaint_id or ids.get("complaint_id", ""),
                fields.request_number or ids.get("request_number", ""),
            )
        if intent == Intent.HISTORY:
            return await self.handlers.handle_history(ctx)
        if intent == Intent.KNOWLEDGE_QUERY:
            has_knowledge = knowledge is not None and bool(knowledge.context)
            return self.handlers.knowledge_reply(reply.reply_text, has_knowledge)
        if intent == Intent.SERVICE_INFO:
            return await self.handlers.handle_service_info(ctx, fields, reply.reply_text)
        if intent == Intent.CREATE_SERVICE_REQUEST:
            return await self.handlers.handle_create_service_request(ctx, fields)
        if intent == Intent.UPDATE_SERVICE_REQUEST:
            number = fields.request_number or ids.get("request_number", "")
            return await self.handlers.handle_update_service_request(ctx, number)
        return HandlerReply(reply.reply_text or fallback_for_intent(intent.value))

    # ------------------------------------------------------------------ #
    # Failure boundary
    # ------------------------------------------------------------------ #

    def _boundary_fallback(self, user_id: str, message: str, error: Exception) -> TurnResult:
        kind = classify_error_text(str(error))
        text = error_fallback(kind) if kind else self._smart_fallback(user_id, message)
        return TurnResult(
            success=False,
            response_text=text,
            intent="ERROR",
            error=str(error),
            metadata={"error_type": kind or "SMART_FALLBACK"},
        )

    def _smart_fallback(self, user_id: str, message: str) -> str:
        """Re-ask the pending question, else answer the detected intent, else apologise."""
        for category in self.store.pending_categories(user_id):
            if category in PENDING_SLOT_PROMPTS:
                return PENDING_SLOT_PROMPTS[category]
        detected = classify(message)
        if detected.matched:
            return fallback_for_intent(detected.intent)
        return DEFAULT_ERROR_TEXT


def build_orchestrator(
    provider: Optional[ModelProvider] = None,
    pool: Optional[CredentialPool] = None,
    cases: Optional[CaseService] = None,
    knowledge: Optional[KnowledgeService] = None,
    channel: Optional[ChannelService] = None,
    profiles: Optional[ProfileStore] = None,
    store: Optional[SessionStateStore] = None,
    config: Optional[AppConfig] = None,
) -> TurnOrchestrator:
    """Wire the store graph once per process.

    Anything not passed in is built from configuration: the Gemini provider,
    the credential pool and the HTTP clients of the collaborator services.
    """
    config = config or settings
    provider = provider or GeminiProvider(config.model.gemini_base_url, config.model.timeout_seconds)
    pool = pool or CredentialPool.from_settings(config.model)
    planner = CallPlanner(provider, pool, UsageTracker(), model_config=config.model)
    store = store or SessionStateStore(config.cache)
    profiles = profiles or ProfileStore()
    confirmation = ConfirmationClassifier(planner, timeout=config.model.micro_timeout_seconds)
    handlers = IntentHandlers(
        store,
        cases or CaseServiceClient(config.services),
        profiles,
        confirmation,
        services_config=config.services,
    )
    return TurnOrchestrator(
        planner,
        store,
        handlers,
        profiles,
        confirmation,
        guardrails=GuardrailPipeline(config.guardrails),
        knowledge=knowledge or KnowledgeServiceClient(config.services),
        channel=channel or ChannelServiceClient(config.services),
        config=config,
    )
