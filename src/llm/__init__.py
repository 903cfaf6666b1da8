from src.llm.call_planner import CallExhausted, CallMetrics, CallPlanner, CallSuccess
from src.llm.credentials import CredentialDescriptor, CredentialPool
from src.llm.provider import GeminiProvider, ModelProvider, ProviderResponse
from src.llm.usage_tracker import UsageTracker

__all__ = [
    "CallPlanner",
    "CallSuccess",
    "CallExhausted",
    "CallMetrics",
    "CredentialDescriptor",
    "CredentialPool",
    "GeminiProvider",
    "ModelProvider",
    "ProviderResponse",
    "UsageTracker",
]
