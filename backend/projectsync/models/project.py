"""
Project model: the durable anchor joining a chat session to its persisted
messages, files and workbench state.
"""
import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from projectsync.db.base import Base


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        UniqueConstraint("owner_id", "url_id", name="unique_url_id_per_owner"),
        Index("idx_projects_last_opened", "owner_id", "last_opened_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id = Column(
        String,
        ForeignKey("user_profiles.user_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    url_id = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False, default="Untitled Project")
    description = Column(Text, nullable=True)

    # Deployment metadata
    git_url = Column(String, nullable=True)
    git_branch = Column(String, nullable=True)
    netlify_site_id = Column(String, nullable=True)

    last_opened_at = Column(DateTime(timezone=True), server_default=func.now())
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    owner = relationship("UserProfile", back_populates="projects")
    messages = relationship(
        "ChatMessage",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )
    files = relationship(
        "ProjectFile",
        back_populates="project",
        cascade="all, delete-orphan",
    )
    workbench_state = relationship(
        "WorkbenchState",
        back_populates="project",
        cascade="all, delete-orphan",
        uselist=False,
    )
