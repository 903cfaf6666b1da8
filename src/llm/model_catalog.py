"""
Model orders and per-tier rate limits for the Gemini model family.

Paid credentials (tier1, tier2 and the builtin env key) start with the
cheapest model and climb; free-tier credentials can only serve the 2.5/3
family and have tiny daily quotas.
"""

from dataclasses import dataclass
from typing import Optional

CAPACITY_THRESHOLD = 0.80
MAX_CONSECUTIVE_FAILURES = 10

MODEL_FALLBACK_ORDER: list[str] = [
    "gemini-2.5-flash-lite",
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
]

MODEL_FALLBACK_ORDER_PAID: list[str] = [
    "gemini-2.0-flash-lite",
    "gemini-2.5-flash-lite",
    "gemini-2.0-flash",
    "gemini-2.5-flash",
    "gemini-3-flash-preview",
]

DEFAULT_MICRO_MODELS: list[str] = [
    "gemini-2.0-flash-lite",
    "gemini-2.5-flash-lite",
]


@dataclass(frozen=True)
class ModelRateLimit:
    """Requests per minute, tokens per minute and requests per day."""

    rpm: int
    tpm: int
    rpd: int


FREE_TIER_LIMITS: dict[str, ModelRateLimit] = {
    "gemini-2.5-flash-lite": ModelRateLimit(rpm=10, tpm=250_000, rpd=20),
    "gemini-2.5-flash": ModelRateLimit(rpm=5, tpm=250_000, rpd=20),
    "gemini-3-flash-preview": ModelRateLimit(rpm=5, tpm=250_000, rpd=20),
}

TIER1_LIMITS: dict[str, ModelRateLimit] = {
    "gemini-2.0-flash-lite": ModelRateLimit(rpm=4000, tpm=4_000_000, rpd=999_999),
    "gemini-2.0-flash": ModelRateLimit(rpm=2000, tpm=4_000_000, rpd=999_999),
    "gemini-2.5-flash-lite": ModelRateLimit(rpm=4000, tpm=4_000_000, rpd=999_999),
    "gemini-2.5-flash": ModelRateLimit(rpm=1000, tpm=1_000_000, rpd=10_000),
    "gemini-3-flash-preview": ModelRateLimit(rpm=1000, tpm=1_000_000, rpd=10_000),
}

TIER2_LIMITS: dict[str, ModelRateLimit] = {
    "gemini-2.0-flash-lite": ModelRateLimit(rpm=8000, tpm=8_000_000, rpd=999_999),
    "gemini-2.0-flash": ModelRateLimit(rpm=4000, tpm=8_000_000, rpd=999_999),
    "gemini-2.5-flash-lite": ModelRateLimit(rpm=8000, tpm=8_000_000, rpd=999_999),
    "gemini-2.5-flash": ModelRateLimit(rpm=2000, tpm=4_000_000, rpd=999_999),
    "gemini-3-flash-preview": ModelRateLimit(rpm=2000, tpm=4_000_000, rpd=999_999),
}

_TIER_LIMITS: dict[str, dict[str, ModelRateLimit]] = {
    "free": FREE_TIER_LIMITS,
    "tier1": TIER1_LIMITS,
    "tier2": TIER2_LIMITS,
}

VALID_TIERS = ("free", "tier1", "tier2", "env")


def limits_for_tier(tier: str) -> Optional[dict[str, ModelRateLimit]]:
    """Rate-limit table for a tier; None for the builtin env key (untracked)."""
    return _TIER_LIMITS.get(tier)


def tier_serves_model(tier: str, model: str) -> bool:
    """Whether a credential of ``tier`` can call ``model`` at all."""
    limits = limits_for_tier(tier)
    if limits is None:
        return True
    return any(model == known or model.startswith(known) for known in limits)


def default_models_for_tier(tier: str) -> list[str]:
    if tier == "free":
        return list(MODEL_FALLBACK_ORDER)
    return list(MODEL_FALLBACK_ORDER_PAID)


def parse_model_list_env(value: str, fallback: list[str]) -> list[str]:
    """Parse a comma-separated model list, de-duplicated, order preserved.

    An empty or blank value yields ``fallback``.

    Examples:
        >>> parse_model_list_env("a, b,a", ["x"])
        ['a', 'b']
        >>> parse_model_list_env("", ["x"])
        ['x']
    """
    seen: list[str] = []
    for raw in (value or "").split(","):
        name = raw.strip()
        if name and name not in seen:
            seen.append(name)
    return seen or list(fallback)
