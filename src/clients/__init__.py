from src.clients.case_client import CaseServiceClient
from src.clients.channel_client import ChannelServiceClient
from src.clients.interfaces import CaseService, ChannelService, KnowledgeService
from src.clients.knowledge_client import KnowledgeServiceClient

__all__ = [
    "CaseService",
    "CaseServiceClient",
    "ChannelService",
    "ChannelServiceClient",
    "KnowledgeService",
    "KnowledgeServiceClient",
]
