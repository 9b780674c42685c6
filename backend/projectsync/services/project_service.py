"""
Project store service - ownership checks and idempotent upserts for the
projects, chat_messages, project_files, workbench_states and user_profiles
tables.

Every lookup is scoped to the caller; a project owned by someone else is
indistinguishable from a missing one.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from projectsync.core.exceptions import NotFoundError, StorageError
from projectsync.db.upsert import upsert_rows
from projectsync.models.chat_message import ChatMessage
from projectsync.models.project import Project
from projectsync.models.project_file import ProjectFile
from projectsync.models.user_profile import UserProfile
from projectsync.models.workbench_state import WorkbenchState
from projectsync.schemas.file import DirentIn
from projectsync.schemas.message import MessageIn
from projectsync.schemas.project import ProjectMetadata
from projectsync.schemas.user_profile import UserProfileSave
from projectsync.schemas.workbench import WorkbenchSave

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _storage_error(db: Session, action: str, exc: SQLAlchemyError) -> StorageError:
    """Roll back and wrap a database failure with the store's message."""
    db.rollback()
    message = str(getattr(exc, "orig", None) or exc)
    logger.error(f"Error {action}: {message}")
    return StorageError(message)


def parse_project_id(value: str) -> Optional[UUID]:
    try:
        return UUID(str(value))
    except ValueError:
        return None


# =============================================================================
# Projects
# =============================================================================

def get_owned_project(db: Session, project_id: str, user_id: str) -> Project:
    """
    Return the caller's project by primary id.

    Raises:
        NotFoundError: If the project does not exist or belongs to someone else
    """
    pid = parse_project_id(project_id)
    project = None
    if pid is not None:
        project = db.query(Project).filter(
            Project.id == pid,
            Project.owner_id == user_id,
        ).first()

    if project is None:
        raise NotFoundError()
    return project


def find_owned_project(db: Session, ref: str, user_id: str) -> Project:
    """Resolve a project by primary id, falling back to its ``url_id``."""
    try:
        return get_owned_project(db, ref, user_id)
    except NotFoundError:
        pass

    project = db.query(Project).filter(
        Project.url_id == ref,
        Project.owner_id == user_id,
    ).first()
    if project is None:
        raise NotFoundError()
    return project


def list_projects(db: Session, user_id: str) -> List[Project]:
    try:
        return db.query(Project).filter(
            Project.owner_id == user_id
        ).order_by(Project.last_opened_at.desc()).all()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "fetching projects", exc)


def ensure_profile(db: Session, user_id: str) -> UserProfile:
    """Get or create the minimal profile row a project must reference."""
    profile = db.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id)
        db.add(profile)
        db.flush()
    return profile


def create_or_touch_project(
    db: Session,
    user_id: str,
    url_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[ProjectMetadata] = None,
) -> Tuple[Project, bool]:
    """
    Create the project for ``(user_id, url_id)`` or bump ``last_opened_at``.

    Returns:
        (project, existed)
    """
    try:
        existing = db.query(Project).filter(
            Project.url_id == url_id,
            Project.owner_id == user_id,
        ).first()

        if existing is not None:
            existing.last_opened_at = _now()
            db.commit()
            db.refresh(existing)
            logger.info(f"Project already exists, updated last_opened_at: {existing.id}")
            return existing, True

        ensure_profile(db, user_id)
        extra = metadata.model_dump(exclude_none=True) if metadata else {}
        project = Project(
            owner_id=user_id,
            url_id=url_id,
            title=title or "Untitled Project",
            description=description,
            last_opened_at=_now(),
            **extra,
        )
        db.add(project)
        db.commit()
        db.refresh(project)
    except SQLAlchemyError as exc:
        raise _storage_error(db, "creating project", exc)

    logger.info(f"Project created: {project.id} ({project.title})")
    return project, False


def update_project(
    db: Session,
    user_id: str,
    project_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    metadata: Optional[ProjectMetadata] = None,
) -> Project:
    project = get_owned_project(db, project_id, user_id)

    project.last_opened_at = _now()
    if title:
        project.title = title
    if description is not None:
        project.description = description
    if metadata:
        for key, value in metadata.model_dump(exclude_none=True).items():
            if value:
                setattr(project, key, value)

    try:
        db.commit()
        db.refresh(project)
    except SQLAlchemyError as exc:
        raise _storage_error(db, "updating project", exc)

    logger.info(f"Project updated: {project.id}")
    return project


def delete_project(db: Session, user_id: str, project_id: str) -> None:
    project = get_owned_project(db, project_id, user_id)
    try:
        db.delete(project)
        db.commit()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "deleting project", exc)
    logger.info(f"Project deleted: {project_id}")


# =============================================================================
# Messages
# =============================================================================

def list_messages(db: Session, project: Project) -> List[ChatMessage]:
    try:
        return db.query(ChatMessage).filter(
            ChatMessage.project_id == project.id
        ).order_by(ChatMessage.created_at.asc()).all()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "fetching messages", exc)


def save_messages(db: Session, project: Project, messages: List[MessageIn]) -> List[ChatMessage]:
    """
    Upsert messages on ``(project_id, message_id)``.

    New rows get strictly increasing ``created_at`` values in request order
    so that a batch reloads in the order it was sent; re-sent rows keep
    their original position.
    """
    base = _now()
    rows = [
        {
            "id": uuid.uuid4(),
            "project_id": project.id,
            "message_id": msg.id,
            "role": msg.role,
            "content": msg.content,
            "parts": msg.parts,
            "tool_calls": msg.tool_calls,
            "annotations": msg.annotations,
            "created_at": base + timedelta(microseconds=index),
        }
        for index, msg in enumerate(messages)
    ]

    try:
        upsert_rows(
            db,
            ChatMessage,
            rows,
            conflict_columns=("project_id", "message_id"),
            update_columns=("role", "content", "parts", "tool_calls", "annotations"),
        )
        db.commit()
        saved = db.query(ChatMessage).filter(
            ChatMessage.project_id == project.id,
            ChatMessage.message_id.in_([msg.id for msg in messages]),
        ).order_by(ChatMessage.created_at.asc()).all()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "saving messages", exc)

    logger.info(f"Saved {len(saved)} messages to project {project.id}")
    return saved


# =============================================================================
# Files
# =============================================================================

def list_files(db: Session, project: Project) -> List[ProjectFile]:
    try:
        return db.query(ProjectFile).filter(
            ProjectFile.project_id == project.id
        ).order_by(ProjectFile.file_path.asc()).all()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "fetching files", exc)


def save_files(db: Session, project: Project, files: Dict[str, DirentIn]) -> List[ProjectFile]:
    """Upsert file entries on ``(project_id, file_path)``; folders are skipped."""
    rows = [
        {
            "id": uuid.uuid4(),
            "project_id": project.id,
            "file_path": path,
            "content": None if dirent.is_binary else dirent.content,
            "file_type": "binary" if dirent.is_binary else "text",
            "size_bytes": len(dirent.content.encode("utf-8")) if dirent.content else 0,
        }
        for path, dirent in files.items()
        if dirent.type == "file"
    ]
    if not rows:
        return []

    try:
        upsert_rows(
            db,
            ProjectFile,
            rows,
            conflict_columns=("project_id", "file_path"),
            update_columns=("content", "file_type", "size_bytes"),
            extra_set={"updated_at": _now()},
        )
        db.commit()
        saved = db.query(ProjectFile).filter(
            ProjectFile.project_id == project.id,
            ProjectFile.file_path.in_([row["file_path"] for row in rows]),
        ).order_by(ProjectFile.file_path.asc()).all()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "saving files", exc)

    logger.info(f"Saved {len(saved)} files to project {project.id}")
    return saved


# =============================================================================
# Workbench
# =============================================================================

def get_workbench(db: Session, project: Project) -> Optional[WorkbenchState]:
    try:
        return db.query(WorkbenchState).filter(
            WorkbenchState.project_id == project.id
        ).first()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "loading workbench state", exc)


def save_workbench(db: Session, project: Project, data: WorkbenchSave) -> WorkbenchState:
    """Upsert the singleton workbench row, filling omitted fields with defaults."""
    row = {
        "id": uuid.uuid4(),
        "project_id": project.id,
        "selected_file": data.selected_file or None,
        "open_files": data.open_files or [],
        "current_view": data.current_view or "code",
        "show_workbench": True if data.show_workbench is None else data.show_workbench,
        "terminal_history": data.terminal_history or [],
        "preview_urls": data.preview_urls or [],
    }

    try:
        upsert_rows(
            db,
            WorkbenchState,
            [row],
            conflict_columns=("project_id",),
            update_columns=(
                "selected_file",
                "open_files",
                "current_view",
                "show_workbench",
                "terminal_history",
                "preview_urls",
            ),
            extra_set={"updated_at": _now()},
        )
        db.commit()
        state = db.query(WorkbenchState).filter(
            WorkbenchState.project_id == project.id
        ).one()
    except SQLAlchemyError as exc:
        raise _storage_error(db, "saving workbench state", exc)

    logger.info(f"Saved workbench state for project {project.id}")
    return state


# =============================================================================
# User profiles
# =============================================================================

def get_profile(db: Session, user_id: str) -> Optional[UserProfile]:
    try:
        return db.get(UserProfile, user_id)
    except SQLAlchemyError as exc:
        raise _storage_error(db, "fetching user profile", exc)


def upsert_profile(db: Session, user_id: str, data: UserProfileSave) -> UserProfile:
    now = _now()
    row = {
        "user_id": user_id,
        "email": data.email or None,
        "first_name": data.first_name or None,
        "last_name": data.last_name or None,
        "image_url": data.image_url or None,
        "last_login_at": now,
        "updated_at": now,
    }

    try:
        upsert_rows(
            db,
            UserProfile,
            [row],
            conflict_columns=("user_id",),
            update_columns=(
                "email",
                "first_name",
                "last_name",
                "image_url",
                "last_login_at",
                "updated_at",
            ),
        )
        db.commit()
        profile = db.get(UserProfile, user_id, populate_existing=True)
    except SQLAlchemyError as exc:
        raise _storage_error(db, "syncing user profile", exc)

    logger.info(f"User profile synced to database: {user_id}")
    return profile


# =============================================================================
# Full load
# =============================================================================

def load_project(db: Session, user_id: str, ref: str) -> dict:
    """
    Load messages, files and workbench state for a project in client shape.

    Failures loading the parts are logged and the part comes back empty,
    so a partially broken project can still be resumed.
    """
    project = find_owned_project(db, ref, user_id)

    try:
        messages = list_messages(db, project)
    except StorageError:
        messages = []
    try:
        files = list_files(db, project)
    except StorageError:
        files = []
    try:
        workbench = get_workbench(db, project)
    except StorageError:
        workbench = None

    loaded_messages = [
        {
            "id": msg.message_id,
            "role": msg.role,
            "content": msg.content,
            "parts": msg.parts,
            "toolInvocations": msg.tool_calls,
            "annotations": msg.annotations,
        }
        for msg in messages
    ]
    file_map = {
        f.file_path: {
            "type": "file",
            "content": f.content or "",
            "isBinary": f.file_type == "binary",
        }
        for f in files
    }

    logger.info(
        f"Loaded project {project.id}: {len(loaded_messages)} messages, "
        f"{len(file_map)} files, workbench: {'yes' if workbench else 'no'}"
    )
    return {
        "project": project,
        "messages": loaded_messages,
        "files": file_map,
        "workbench": workbench,
    }
