"""Turn input/output contract and conversation history messages."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Channel(str, Enum):
    WHATSAPP = "whatsapp"
    WEBCHAT = "webchat"


class HistoryMessage(BaseModel):
    """A single message in a user's conversation history."""

    role: Role
    content: str
    timestamp: Optional[float] = None


class TurnInput(BaseModel):
    """One incoming citizen message."""

    user_id: str
    channel: Channel = Channel.WHATSAPP
    message: str
    media_url: Optional[str] = None
    history: Optional[list[HistoryMessage]] = None


class TurnResult(BaseModel):
    """The assistant's answer to one turn; every turn produces one."""

    success: bool
    response_text: str
    guidance_text: Optional[str] = None
    intent: str
    fields: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
