from src.conversation.fast_classifier import ClassificationResult, classify
from src.conversation.guardrails import GuardrailPipeline, validate_response
from src.conversation.handlers import IntentHandlers
from src.conversation.orchestrator import TurnOrchestrator, build_orchestrator
from src.conversation.session_state import SessionStateStore

__all__ = [
    "ClassificationResult",
    "classify",
    "GuardrailPipeline",
    "validate_response",
    "IntentHandlers",
    "TurnOrchestrator",
    "build_orchestrator",
    "SessionStateStore",
]
