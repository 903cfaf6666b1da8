"""
Per-credential, per-model success/failure bookkeeping.

The call planner records every attempt here and asks for a model priority
before building its plan, so models that keep failing drift to the back of
the list while established healthy models move forward. Nothing in this
module raises; missing data is treated as neutral.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MIN_CALLS_FOR_RANKING = 5
ESTABLISHED_SUCCESS_RATE = 0.70
ERROR_HISTORY_SIZE = 10


@dataclass
class PairStats:
    """Counters for one (credential, model) pair."""

    successes: int = 0
    failures: int = 0
    last_latency_ms: Optional[int] = None
    last_rate_limited_at: Optional[float] = None


@dataclass
class ModelStats:
    """Aggregated counters for one model across every credential."""

    total_calls: int = 0
    success_calls: int = 0
    failed_calls: int = 0
    total_latency_ms: int = 0
    last_error: Optional[str] = None
    errors: deque = field(default_factory=lambda: deque(maxlen=ERROR_HISTORY_SIZE))

    @property
    def success_rate(self) -> float:
        if self.total_calls == 0:
            return 1.0
        return self.success_calls / self.total_calls

    @property
    def avg_latency_ms(self) -> int:
        if self.total_calls == 0:
            return 0
        return round(self.total_latency_ms / self.total_calls)


class UsageTracker:
    """In-memory tracker that lives for the process lifetime."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._pairs: dict[tuple[str, str], PairStats] = {}
        self._models: dict[str, ModelStats] = {}

    def _pair(self, credential_id: str, model: str) -> PairStats:
        return self._pairs.setdefault((credential_id, model), PairStats())

    def _model(self, model: str) -> ModelStats:
        return self._models.setdefault(model, ModelStats())

    def record_success(self, credential_id: str, model: str, latency_ms: int) -> None:
        pair = self._pair(credential_id, model)
        pair.successes += 1
        pair.last_latency_ms = latency_ms

        stats = self._model(model)
        stats.total_calls += 1
        stats.success_calls += 1
        stats.total_latency_ms += latency_ms
        logger.debug(
            "Model success: %s via %s (%.0f%% over %d calls)",
            model, credential_id, stats.success_rate * 100, stats.total_calls,
        )

    def record_failure(
        self, credential_id: str, model: str, error: str, latency_ms: int = 0
    ) -> None:
        pair = self._pair(credential_id, model)
        pair.failures += 1
        pair.last_latency_ms = latency_ms

        stats = self._model(model)
        stats.total_calls += 1
        stats.failed_calls += 1
        stats.total_latency_ms += latency_ms
        stats.last_error = error
        stats.errors.append((self._clock(), error[:200]))
        logger.debug("Model failure: %s via %s: %s", model, credential_id, error[:100])

    def record_rate_limit(self, credential_id: str, model: str) -> None:
        self._pair(credential_id, model).last_rate_limited_at = self._clock()
        self.record_failure(credential_id, model, "rate limited")

    def get_model_priority(self, models: list[str]) -> list[str]:
        """Reorder ``models`` by recent success rate.

        Established models (enough calls and a healthy success rate) come
        first. Models with too few calls are neutral and rank as if fully
        successful. Ties keep the declared order.
        """
        try:
            def sort_key(indexed: tuple[int, str]) -> tuple[int, float, int]:
                index, model = indexed
                stats = self._models.get(model)
                if stats is None or stats.total_calls < MIN_CALLS_FOR_RANKING:
                    return (1, -1.0, index)
                established = stats.success_rate >= ESTABLISHED_SUCCESS_RATE
                return (0 if established else 1, -stats.success_rate, index)

            return [model for _, model in sorted(enumerate(models), key=sort_key)]
        except Exception:
            logger.exception("Model priority calculation failed, keeping declared order")
            return list(models)

    def pair_stats(self, credential_id: str, model: str) -> Optional[PairStats]:
        return self._pairs.get((credential_id, model))

    def model_stats(self, model: str) -> Optional[ModelStats]:
        return self._models.get(model)

    def snapshot(self) -> dict[str, dict]:
        """Per-model summary for logging and the console demo."""
        return {
            model: {
                "total_calls": stats.total_calls,
                "success_rate": round(stats.success_rate, 3),
                "avg_latency_ms": stats.avg_latency_ms,
                "last_errors": [error for _, error in stats.errors],
            }
            for model, stats in self._models.items()
        }
