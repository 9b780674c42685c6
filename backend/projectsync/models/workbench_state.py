import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from projectsync.db.base import Base
from projectsync.models.types import JSONType


class WorkbenchState(Base):
    """Editor/workbench UI state, one row per project."""

    __tablename__ = "workbench_states"
    __table_args__ = (
        CheckConstraint(
            "current_view IN ('code', 'diff', 'preview')",
            name="workbench_states_view_check",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(
        Uuid,
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    # Editor state
    selected_file = Column(Text, nullable=True)
    open_files = Column(JSONType, nullable=False, default=list)

    # View state
    current_view = Column(String(10), nullable=True)
    show_workbench = Column(Boolean, nullable=False, default=False)

    terminal_history = Column(JSONType, nullable=False, default=list)
    preview_urls = Column(JSONType, nullable=False, default=list)

    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    project = relationship("Project", back_populates="workbench_state")
