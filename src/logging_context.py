"""Turn ID logging context for tracing one message across modules.

Provides a turn-aware logger that attaches a correlation ID to every
log record, so a single citizen message can be followed from the spam
check through the call planner to the final reply.

Usage:
    from src.logging_context import get_turn_logger, new_turn_id, set_turn_id

    set_turn_id(new_turn_id("6281234567890"))
    logger = get_turn_logger(__name__)
    logger.info("Processing message")  # record.turn_id == "6281234567890:3f9a1c"
"""

import logging
import uuid
from contextvars import ContextVar

_turn_id: ContextVar[str] = ContextVar("turn_id", default="NO_TURN_ID")


def new_turn_id(user_id: str) -> str:
    """Build a short correlation ID scoped to the user."""
    return f"{user_id}:{uuid.uuid4().hex[:6]}"


def set_turn_id(turn_id: str) -> None:
    """Set the correlation ID for the current async context."""
    _turn_id.set(turn_id)


def get_turn_id() -> str:
    """Retrieve the current correlation ID."""
    return _turn_id.get()


class TurnIdFilter(logging.Filter):
    """Injects turn_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.turn_id = _turn_id.get()  # type: ignore[attr-defined]
        return True


def get_turn_logger(name: str) -> logging.Logger:
    """Return a logger with the TurnIdFilter attached.

    The filter adds ``turn_id`` to each record so formatters can
    include ``%(turn_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, TurnIdFilter) for f in logger.filters):
        logger.addFilter(TurnIdFilter())
    return logger
