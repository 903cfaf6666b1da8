"""
Centralized configuration with environment variable overrides.

Model lists, retry limits, cache lifetimes, service endpoints and guardrail
thresholds all live here. Nothing is hardcoded in planner or handler logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    return os.getenv(env_var, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ModelConfig:
    """Generative model provider, credentials and call-planner settings."""

    gemini_api_key: str = os.getenv("GEMINI_API_KEY", "")
    byok_keys: str = os.getenv("GEMINI_BYOK_KEYS", "")
    gemini_base_url: str = os.getenv(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"
    )
    full_nlu_models: str = os.getenv("FULL_NLU_MODELS", "")
    micro_nlu_models: str = os.getenv("MICRO_NLU_MODELS", "")
    temperature: float = _safe_float("LLM_TEMPERATURE", "0.7")
    max_output_tokens: int = _safe_int("LLM_MAX_TOKENS", "2048")
    timeout_seconds: float = _safe_float("LLM_TIMEOUT_SECONDS", "30")
    micro_timeout_seconds: float = _safe_float("MICRO_LLM_TIMEOUT_SECONDS", "10")
    max_retries_per_model: int = _safe_int("LLM_MAX_RETRIES_PER_MODEL", "2")
    base_retry_delay: float = _safe_float("LLM_BASE_RETRY_DELAY", "1.0")
    max_retry_delay: float = _safe_float("LLM_MAX_RETRY_DELAY", "5.0")
    json_retry_extra_delay: float = _safe_float("LLM_JSON_RETRY_EXTRA_DELAY", "0.5")


@dataclass(frozen=True)
class CacheConfig:
    """Lifetimes and capacities for the ephemeral state caches."""

    pending_state_ttl_seconds: float = _safe_float("PENDING_STATE_TTL_SECONDS", "600")
    history_ttl_seconds: float = _safe_float("HISTORY_CACHE_TTL_SECONDS", "60")
    complaint_type_ttl_seconds: float = _safe_float("COMPLAINT_TYPE_CACHE_TTL_SECONDS", "300")
    service_search_ttl_seconds: float = _safe_float("SERVICE_SEARCH_CACHE_TTL_SECONDS", "300")
    sweep_interval_seconds: float = _safe_float("CACHE_SWEEP_INTERVAL_SECONDS", "60")
    max_pending_photos: int = _safe_int("MAX_PENDING_PHOTOS", "5")


@dataclass(frozen=True)
class ServiceConfig:
    """Endpoints of the case, channel and knowledge services."""

    case_service_url: str = os.getenv("CASE_SERVICE_URL", "http://localhost:3003")
    channel_service_url: str = os.getenv("CHANNEL_SERVICE_URL", "http://localhost:3001")
    knowledge_service_url: str = os.getenv("KNOWLEDGE_SERVICE_URL", "http://localhost:3004")
    internal_api_key: str = os.getenv("INTERNAL_API_KEY", "")
    timeout_seconds: float = _safe_float("SERVICE_TIMEOUT_SECONDS", "10")
    history_fetch_limit: int = _safe_int("HISTORY_FETCH_LIMIT", "30")
    public_form_base_url: str = os.getenv("PUBLIC_FORM_BASE_URL", "https://govconnect.my.id")


@dataclass(frozen=True)
class GuardrailConfig:
    """Thresholds for spam protection, reply validation and shutdown."""

    max_response_length: int = _safe_int("MAX_RESPONSE_LENGTH", "4000")
    spam_max_identical: int = _safe_int("SPAM_GUARD_MAX_IDENTICAL", "5")
    spam_rate_max_messages: int = _safe_int("SPAM_RATE_MAX_MESSAGES", "10")
    spam_rate_window_seconds: float = _safe_float("SPAM_RATE_WINDOW_SECONDS", "10")
    spam_ban_seconds: float = _safe_float("SPAM_GUARD_BAN_SECONDS", "60")
    drain_timeout_seconds: float = _safe_float("DRAIN_TIMEOUT_SECONDS", "15")
    force_llm_intent: bool = _safe_bool("FORCE_LLM_INTENT", "false")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    model: ModelConfig = field(default_factory=ModelConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    assistant_name: str = os.getenv("ASSISTANT_NAME", "Gana")
    village_name: str = os.getenv("VILLAGE_NAME", "Desa/Kelurahan")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not 0.0 <= config.model.temperature <= 2.0:
        raise ValueError(
            f"LLM_TEMPERATURE must be between 0.0 and 2.0, got {config.model.temperature}"
        )
    if config.model.max_output_tokens < 1:
        raise ValueError(
            f"LLM_MAX_TOKENS must be >= 1, got {config.model.max_output_tokens}"
        )
    if config.model.max_retries_per_model < 1:
        raise ValueError(
            "LLM_MAX_RETRIES_PER_MODEL must be >= 1, "
            f"got {config.model.max_retries_per_model}"
        )
    for name, value in [
        ("LLM_TIMEOUT_SECONDS", config.model.timeout_seconds),
        ("MICRO_LLM_TIMEOUT_SECONDS", config.model.micro_timeout_seconds),
        ("PENDING_STATE_TTL_SECONDS", config.cache.pending_state_ttl_seconds),
        ("HISTORY_CACHE_TTL_SECONDS", config.cache.history_ttl_seconds),
        ("CACHE_SWEEP_INTERVAL_SECONDS", config.cache.sweep_interval_seconds),
        ("SERVICE_TIMEOUT_SECONDS", config.services.timeout_seconds),
        ("DRAIN_TIMEOUT_SECONDS", config.guardrails.drain_timeout_seconds),
    ]:
        if value <= 0:
            raise ValueError(f"{name} must be > 0, got {value}")

    if config.model.base_retry_delay < 0 or config.model.max_retry_delay < 0:
        raise ValueError(
            "LLM_BASE_RETRY_DELAY and LLM_MAX_RETRY_DELAY must be >= 0, "
            f"got {config.model.base_retry_delay} and {config.model.max_retry_delay}"
        )
    if config.cache.max_pending_photos < 1:
        raise ValueError(
            f"MAX_PENDING_PHOTOS must be >= 1, got {config.cache.max_pending_photos}"
        )
    if config.guardrails.max_response_length < 100:
        raise ValueError(
            f"MAX_RESPONSE_LENGTH must be >= 100, got {config.guardrails.max_response_length}"
        )
    if config.guardrails.spam_max_identical < 2:
        raise ValueError(
            f"SPAM_GUARD_MAX_IDENTICAL must be >= 2, got {config.guardrails.spam_max_identical}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger.info("Configuration loaded for assistant '%s'", config.assistant_name)
    return config


# Singleton instance
settings = load_config()
