"""
ChatMessage model for persisted chat transcripts.

Rows are keyed on ``(project_id, message_id)`` so that re-sending the same
message is an update, never a duplicate.
"""
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from projectsync.db.base import Base
from projectsync.models.types import JSONType


class ChatMessage(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (
        UniqueConstraint("project_id", "message_id", name="unique_message_per_project"),
        CheckConstraint("role IN ('user', 'assistant', 'system')", name="chat_messages_role_check"),
        Index("idx_messages_project", "project_id", "created_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Client-side message identifier
    message_id = Column(String, nullable=False)
    role = Column(String(20), nullable=False)
    content = Column(Text, nullable=False)

    parts = Column(JSONType, nullable=True)
    tool_calls = Column(JSONType, nullable=True)
    annotations = Column(JSONType, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    project = relationship("Project", back_populates="messages")
