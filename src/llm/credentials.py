"""
Credential pool: BYOK keys plus the builtin env key, with rolling quotas.

A credential is a Gemini API key with a tier. BYOK keys (bring your own
key) are listed in ``GEMINI_BYOK_KEYS`` as ``name:tier:key`` entries and are
tried before the builtin ``GEMINI_API_KEY``. Free-tier BYOK keys come first
because they are the cheapest; the env key is the paid fallback.

Per (credential, model) the pool keeps request and token counters for the
current minute and the current day, and reports a pair as at capacity once
any counter reaches 80% of the tier's limit.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from src.llm.model_catalog import (
    CAPACITY_THRESHOLD,
    MAX_CONSECUTIVE_FAILURES,
    VALID_TIERS,
    default_models_for_tier,
    limits_for_tier,
    tier_serves_model,
)

logger = logging.getLogger(__name__)

ENV_CREDENTIAL_ID = "env"

_TIER_ORDER = {"free": 0, "tier1": 1, "tier2": 2, "env": 3}


@dataclass
class CredentialDescriptor:
    """One API key, its tier and health."""

    key_id: str
    name: str
    api_key: str
    tier: str = "env"
    is_byok: bool = False
    is_valid: bool = True
    consecutive_failures: int = 0

    @property
    def source(self) -> str:
        return "byok" if self.is_byok else "env"

    def __repr__(self) -> str:
        # Never leak the key itself into logs.
        return (
            f"CredentialDescriptor(key_id={self.key_id!r}, name={self.name!r}, "
            f"tier={self.tier!r}, is_byok={self.is_byok}, is_valid={self.is_valid})"
        )


@dataclass
class _Window:
    bucket: int = -1
    requests: int = 0
    input_tokens: int = 0


@dataclass
class _PairUsage:
    minute: _Window = field(default_factory=_Window)
    day: _Window = field(default_factory=_Window)
    saturated_until: float = 0.0


@dataclass
class CallPlanEntry:
    """One (credential, model) attempt slot in a call plan."""

    credential: CredentialDescriptor
    model: str


def parse_byok_keys(raw: str) -> list[CredentialDescriptor]:
    """Parse ``name:tier:key`` entries separated by commas.

    Entries with an unknown tier or an empty key are skipped with a warning.
    """
    credentials: list[CredentialDescriptor] = []
    for index, entry in enumerate(part.strip() for part in (raw or "").split(",")):
        if not entry:
            continue
        parts = entry.split(":", 2)
        if len(parts) != 3 or not parts[2].strip():
            logger.warning("Ignoring malformed BYOK entry #%d", index)
            continue
        name, tier, api_key = (p.strip() for p in parts)
        if tier not in VALID_TIERS or tier == "env":
            logger.warning("Ignoring BYOK entry '%s' with unknown tier '%s'", name, tier)
            continue
        credentials.append(
            CredentialDescriptor(
                key_id=f"byok-{index}-{name}",
                name=name,
                api_key=api_key,
                tier=tier,
                is_byok=True,
            )
        )
    return credentials


class CredentialPool:
    """Ordered credentials plus their rolling usage counters."""

    def __init__(
        self,
        credentials: list[CredentialDescriptor],
        clock: Callable[[], float] = time.time,
    ) -> None:
        byok = [c for c in credentials if c.is_byok]
        builtin = [c for c in credentials if not c.is_byok]
        byok.sort(key=lambda c: _TIER_ORDER.get(c.tier, 99))
        self.credentials: list[CredentialDescriptor] = byok + builtin
        self._clock = clock
        self._usage: dict[tuple[str, str], _PairUsage] = {}

    @classmethod
    def from_settings(cls, model_config) -> "CredentialPool":
        credentials = parse_byok_keys(model_config.byok_keys)
        if model_config.gemini_api_key:
            credentials.append(
                CredentialDescriptor(
                    key_id=ENV_CREDENTIAL_ID,
                    name=".env (fallback)",
                    api_key=model_config.gemini_api_key,
                    tier="env",
                )
            )
        if not credentials:
            logger.warning("No Gemini credentials configured; every model call will be exhausted")
        return cls(credentials)

    def usable(self) -> list[CredentialDescriptor]:
        return [c for c in self.credentials if c.is_valid]

    def _usage_for(self, credential: CredentialDescriptor, model: str) -> _PairUsage:
        usage = self._usage.setdefault((credential.key_id, model), _PairUsage())
        now = self._clock()
        minute_bucket, day_bucket = int(now // 60), int(now // 86400)
        if usage.minute.bucket != minute_bucket:
            usage.minute = _Window(bucket=minute_bucket)
        if usage.day.bucket != day_bucket:
            usage.day = _Window(bucket=day_bucket)
        return usage

    def is_at_capacity(self, credential: CredentialDescriptor, model: str) -> bool:
        """True when the pair reached 80% of any rpm/tpm/rpd limit.

        The builtin env key is never throttled locally; a model missing from
        the tier's table is always at capacity.
        """
        usage = self._usage_for(credential, model)
        if usage.saturated_until > self._clock():
            return True
        limits = limits_for_tier(credential.tier)
        if limits is None:
            return False
        limit = next(
            (v for k, v in limits.items() if model == k or model.startswith(k)), None
        )
        if limit is None:
            return True
        return (
            usage.minute.requests >= limit.rpm * CAPACITY_THRESHOLD
            or usage.minute.input_tokens >= limit.tpm * CAPACITY_THRESHOLD
            or usage.day.requests >= limit.rpd * CAPACITY_THRESHOLD
        )

    def record_usage(
        self, credential: CredentialDescriptor, model: str, input_tokens: int
    ) -> None:
        usage = self._usage_for(credential, model)
        for window in (usage.minute, usage.day):
            window.requests += 1
            window.input_tokens += input_tokens

    def mark_rate_limited(self, credential: CredentialDescriptor, model: str) -> None:
        """Treat the pair as at capacity until the current minute rolls over."""
        now = self._clock()
        self._usage_for(credential, model).saturated_until = (int(now // 60) + 1) * 60
        logger.info("Credential '%s' rate limited on %s", credential.name, model)

    def record_success(self, credential: CredentialDescriptor) -> None:
        credential.consecutive_failures = 0

    def record_failure(self, credential: CredentialDescriptor, error: str) -> None:
        if not credential.is_byok:
            return
        credential.consecutive_failures += 1
        if credential.consecutive_failures >= MAX_CONSECUTIVE_FAILURES:
            credential.is_valid = False
            logger.error(
                "BYOK key '%s' marked invalid after %d consecutive failures: %s",
                credential.name, credential.consecutive_failures, error[:100],
            )

    def mark_invalid(self, credential: CredentialDescriptor, reason: str) -> None:
        if credential.is_byok:
            credential.is_valid = False
        logger.error("Credential '%s' rejected by provider: %s", credential.name, reason[:100])

    def build_call_plan(
        self,
        models: Optional[list[str]] = None,
        prioritize: Optional[Callable[[list[str]], list[str]]] = None,
    ) -> list[CallPlanEntry]:
        """Credential-major, model-minor cross product of usable pairs.

        Pairs whose tier cannot serve the model or which are at capacity are
        left out. Without an explicit model list each credential uses the
        default order of its tier; ``prioritize`` may reorder that list.
        """
        plan: list[CallPlanEntry] = []
        for credential in self.usable():
            candidates = list(models) if models else default_models_for_tier(credential.tier)
            if prioritize is not None:
                candidates = prioritize(candidates)
            for model in candidates:
                if not tier_serves_model(credential.tier, model):
                    continue
                if self.is_at_capacity(credential, model):
                    logger.debug("Skipping %s on '%s': at capacity", model, credential.name)
                    continue
                plan.append(CallPlanEntry(credential=credential, model=model))
        return plan
