"""
Call planner: sequences credentials x models with bounded retries.

For one logical request the planner materializes a call plan (credential
major, model minor), then walks it:

- rate limit       -> mark the pair at capacity, next pair, no backoff
- invalid key      -> skip every remaining pair of that credential
- model not found  -> next pair
- anything else    -> retry the same pair after exponential backoff

Typed provider errors carry their kind; untyped ones are classified from
their text.

The first success returns immediately with metrics. When the plan runs out
the planner returns ``CallExhausted``; it never raises a model error to its
caller and never fabricates a successful reply.
"""

import asyncio
import logging
import random
import re
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from src.config import settings
from src.errors import ErrorKind, ModelCallError
from src.llm.credentials import CallPlanEntry, CredentialPool
from src.llm.model_catalog import parse_model_list_env
from src.llm.provider import ModelProvider
from src.llm.response_parser import parse_model_output
from src.llm.usage_tracker import UsageTracker
from src.schemas.model_reply import RESPONSE_JSON_SCHEMA

logger = logging.getLogger(__name__)

T = TypeVar("T")

_STATUS_RE = re.compile(r"\berror (\d{3})\b")
_STATUS_KINDS = {
    401: ErrorKind.MODEL_INVALID_CREDENTIAL,
    403: ErrorKind.MODEL_INVALID_CREDENTIAL,
    404: ErrorKind.MODEL_UNSUPPORTED,
    429: ErrorKind.MODEL_RATE_LIMITED,
}
_RATE_LIMIT_MARKERS = ("RESOURCE_EXHAUSTED", "rate limit", "quota")
_INVALID_KEY_MARKERS = ("API_KEY_INVALID", "PERMISSION_DENIED", "UNAUTHENTICATED")
_UNSUPPORTED_MARKERS = ("not found", "not supported")
_JSON_MARKERS = ("JSON", "Unterminated", "parsing")


def classify_failure(error: str) -> Optional[ErrorKind]:
    """Map untyped provider error text to a terminal kind, or None if retryable.

    Only the status right after ``error`` counts; digits elsewhere in the
    body are ignored. A 5xx status is always retryable.

    Examples:
        >>> classify_failure("Gemini API returned error 429: RESOURCE_EXHAUSTED")
        <ErrorKind.MODEL_RATE_LIMITED: 'MODEL_RATE_LIMITED'>
        >>> classify_failure("LLM timeout after 30000ms") is None
        True
    """
    match = _STATUS_RE.search(error)
    if match:
        status = int(match.group(1))
        if status in _STATUS_KINDS:
            return _STATUS_KINDS[status]
        if status >= 500:
            return None
    lowered = error.lower()
    if any(marker.lower() in lowered for marker in _RATE_LIMIT_MARKERS):
        return ErrorKind.MODEL_RATE_LIMITED
    if any(marker in error for marker in _INVALID_KEY_MARKERS):
        return ErrorKind.MODEL_INVALID_CREDENTIAL
    if any(marker in lowered for marker in _UNSUPPORTED_MARKERS):
        return ErrorKind.MODEL_UNSUPPORTED
    return None


def is_json_failure(error: str) -> bool:
    return any(marker in error for marker in _JSON_MARKERS)


@dataclass
class CallMetrics:
    """Provenance and cost of the successful attempt."""

    model: str
    duration_ms: int
    input_tokens: int
    output_tokens: int
    total_tokens: int
    key_source: str
    key_id: Optional[str]
    key_tier: str
    attempts: int

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CallSuccess(Generic[T]):
    value: T
    metrics: CallMetrics
    raw_text: str = ""

    ok = True


@dataclass
class CallExhausted:
    """Every pair of the plan failed (or the plan was empty)."""

    attempts: int
    last_error: str
    kind: Optional[ErrorKind] = None

    ok = False


CallOutcome = Union[CallSuccess, CallExhausted]


class CallPlanner:
    """Executes one logical model request against the credential pool."""

    def __init__(
        self,
        provider: ModelProvider,
        pool: CredentialPool,
        tracker: Optional[UsageTracker] = None,
        model_config=None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.provider = provider
        self.pool = pool
        self.tracker = tracker or UsageTracker()
        self.config = model_config or settings.model
        self._sleep = sleep
        self._rng = rng

    def backoff_delay(self, attempt: int, error: str = "") -> float:
        """Seconds to wait before retry ``attempt + 1`` of the same pair."""
        delay = min(
            self.config.max_retry_delay,
            self.config.base_retry_delay * (2 ** attempt) + self._rng() * 0.5,
        )
        if is_json_failure(error):
            delay += self.config.json_retry_extra_delay
        return delay

    def declared_models(self, models: Optional[list[str]] = None) -> Optional[list[str]]:
        """Caller list, overridden by ``FULL_NLU_MODELS`` when that is set."""
        override = parse_model_list_env(self.config.full_nlu_models, [])
        if override:
            return override
        return list(models) if models else None

    def build_plan(self, models: Optional[list[str]] = None) -> list[CallPlanEntry]:
        return self.pool.build_call_plan(models, prioritize=self.tracker.get_model_priority)

    async def execute(
        self,
        prompt: str,
        models: Optional[list[str]] = None,
        parse: Callable[[str], T] = parse_model_output,
        response_schema: Optional[dict[str, Any]] = RESPONSE_JSON_SCHEMA,
        timeout: Optional[float] = None,
        use_env_override: bool = True,
        temperature: Optional[float] = None,
        max_output_tokens: Optional[int] = None,
    ) -> CallOutcome:
        """Run the call plan until one attempt succeeds or the plan is spent."""
        started = time.monotonic()
        timeout = timeout or self.config.timeout_seconds
        declared = self.declared_models(models) if use_env_override else models
        plan = self.build_plan(declared)

        if not plan:
            logger.error("No credentials or models available for model call")
            return CallExhausted(attempts=0, last_error="empty call plan")

        logger.info(
            "Starting model call: %d pairs over %d credential(s)",
            len(plan), len({entry.credential.key_id for entry in plan}),
        )

        attempts = 0
        last_error = ""
        last_kind: Optional[ErrorKind] = None
        abandoned: set[str] = set()

        for entry in plan:
            credential, model = entry.credential, entry.model
            if credential.key_id in abandoned:
                continue

            for retry in range(self.config.max_retries_per_model):
                attempts += 1
                attempt_started = time.monotonic()
                try:
                    response = await asyncio.wait_for(
                        self.provider.generate(
                            api_key=credential.api_key,
                            model=model,
                            prompt=prompt,
                            response_schema=response_schema,
                            temperature=self.config.temperature if temperature is None else temperature,
                            max_output_tokens=max_output_tokens or self.config.max_output_tokens,
                        ),
                        timeout=timeout,
                    )
                    value = parse(response.text)
                except asyncio.TimeoutError:
                    last_error = f"LLM timeout after {int(timeout * 1000)}ms"
                    last_kind = ErrorKind.MODEL_TIMEOUT
                except ModelCallError as e:
                    last_error = str(e) or e.__class__.__name__
                    last_kind = e.kind
                except Exception as e:
                    # Connection resets, bad usage payloads and the like: retry.
                    last_error = f"{e.__class__.__name__}: {e}"
                    last_kind = None
                    logger.warning("Unexpected %s from provider on %s", e.__class__.__name__, model)
                else:
                    latency_ms = int((time.monotonic() - attempt_started) * 1000)
                    self.tracker.record_success(credential.key_id, model, latency_ms)
                    self.pool.record_success(credential)
                    self.pool.record_usage(credential, model, response.input_tokens)
                    metrics = CallMetrics(
                        model=model,
                        duration_ms=int((time.monotonic() - started) * 1000),
                        input_tokens=response.input_tokens,
                        output_tokens=response.output_tokens,
                        total_tokens=response.total_tokens,
                        key_source=credential.source,
                        key_id=credential.key_id if credential.is_byok else None,
                        key_tier=credential.tier,
                        attempts=attempts,
                    )
                    logger.info(
                        "Model call succeeded: %s via '%s' after %d attempt(s)",
                        model, credential.name, attempts,
                    )
                    return CallSuccess(value=value, metrics=metrics, raw_text=response.text)

                latency_ms = int((time.monotonic() - attempt_started) * 1000)
                kind = last_kind if last_kind is not None else classify_failure(last_error)

                if kind == ErrorKind.MODEL_RATE_LIMITED:
                    self.tracker.record_rate_limit(credential.key_id, model)
                    self.pool.mark_rate_limited(credential, model)
                    last_kind = kind
                    logger.warning("Rate limit on %s via '%s', next pair", model, credential.name)
                    break

                self.tracker.record_failure(credential.key_id, model, last_error, latency_ms)
                self.pool.record_failure(credential, last_error)

                if kind == ErrorKind.MODEL_INVALID_CREDENTIAL:
                    self.pool.mark_invalid(credential, last_error)
                    abandoned.add(credential.key_id)
                    last_kind = kind
                    logger.warning("Credential '%s' rejected, skipping its remaining pairs", credential.name)
                    break

                if kind == ErrorKind.MODEL_UNSUPPORTED:
                    last_kind = kind
                    logger.warning("Model %s unavailable via '%s', next pair", model, credential.name)
                    break

                if retry < self.config.max_retries_per_model - 1:
                    delay = self.backoff_delay(retry, last_error)
                    logger.info(
                        "Attempt %d on %s failed (%s), retrying in %.2fs",
                        attempts, model, last_error[:100], delay,
                    )
                    await self._sleep(delay)

        logger.error(
            "All model attempts exhausted after %d attempts in %dms: %s",
            attempts, int((time.monotonic() - started) * 1000), last_error[:200],
        )
        return CallExhausted(attempts=attempts, last_error=last_error, kind=last_kind)
