"""
Error taxonomy shared by the call planner, service clients and orchestrator.

Model-layer errors are raised by the provider and absorbed by the call
planner. Downstream errors are raised by service clients and translated
into Indonesian replies by the intent handlers. Anything else is caught at
the orchestrator boundary.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    MODEL_RATE_LIMITED = "MODEL_RATE_LIMITED"
    MODEL_INVALID_CREDENTIAL = "MODEL_INVALID_CREDENTIAL"
    MODEL_UNSUPPORTED = "MODEL_UNSUPPORTED"
    MODEL_TIMEOUT = "MODEL_TIMEOUT"
    MODEL_MALFORMED_OUTPUT = "MODEL_MALFORMED_OUTPUT"
    DOWNSTREAM_NOT_FOUND = "NOT_FOUND"
    DOWNSTREAM_NOT_OWNER = "NOT_OWNER"
    DOWNSTREAM_LOCKED = "LOCKED"
    DOWNSTREAM_UNAVAILABLE = "UNAVAILABLE"
    SPAM_REJECTED = "SPAM_REJECTED"


class AssistantError(Exception):
    """Base class for all errors raised inside the assistant core."""

    kind: Optional[ErrorKind] = None


class ModelCallError(AssistantError):
    """A single provider call failed.

    The message keeps the provider's raw text (status code, error reason).
    Subclasses carry a ``kind``; a bare ``ModelCallError`` is classified by
    the planner from its text.
    """


class ModelRateLimitedError(ModelCallError):
    kind = ErrorKind.MODEL_RATE_LIMITED


class ModelInvalidCredentialError(ModelCallError):
    kind = ErrorKind.MODEL_INVALID_CREDENTIAL


class ModelUnsupportedError(ModelCallError):
    kind = ErrorKind.MODEL_UNSUPPORTED


class ModelTimeoutError(ModelCallError):
    kind = ErrorKind.MODEL_TIMEOUT


class MalformedOutputError(ModelCallError):
    kind = ErrorKind.MODEL_MALFORMED_OUTPUT


class PlanExhaustedError(AssistantError):
    """Raised by callers that cannot continue without a model reply."""

    def __init__(self, attempts: int, last_error: str) -> None:
        super().__init__(
            f"LLM call failed - all models exhausted after {attempts} attempts: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class DownstreamError(AssistantError):
    """A collaborator service returned an error kind or could not be reached."""

    def __init__(self, kind: ErrorKind, message: str = "") -> None:
        super().__init__(message or kind.value)
        self.kind = kind
