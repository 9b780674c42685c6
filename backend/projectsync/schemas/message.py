"""
Chat message schemas.

The client speaks camelCase (``toolCalls`` on write, ``toolInvocations`` on
load); rows are stored snake_case.
"""
from datetime import datetime
from typing import Any, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class MessageIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., min_length=1)
    role: Literal["user", "assistant", "system"]
    content: str
    parts: Optional[Any] = None
    tool_calls: Optional[Any] = Field(None, alias="toolCalls")
    annotations: Optional[List[Any]] = None


class MessagesSave(BaseModel):
    messages: List[MessageIn]


class ChatMessageOut(BaseModel):
    id: UUID
    project_id: UUID
    message_id: str
    role: str
    content: str
    parts: Optional[Any] = None
    tool_calls: Optional[Any] = None
    annotations: Optional[List[Any]] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MessageListResponse(BaseModel):
    messages: List[ChatMessageOut]
    count: int


class LoadedMessage(BaseModel):
    """A message shaped the way the client keeps it in memory."""
    id: str
    role: str
    content: str
    parts: Optional[Any] = None
    toolInvocations: Optional[Any] = None
    annotations: Optional[List[Any]] = None
