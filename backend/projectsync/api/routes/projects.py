"""
Project API endpoints.

Provides endpoints for:
- Listing the caller's projects
- Creating (or touching), updating and deleting a project by intent
- Loading a project's full state for restore
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from projectsync.core.deps import get_db, get_current_user_id
from projectsync.core.exceptions import ValidationError
from projectsync.schemas.load import ProjectLoadResponse
from projectsync.schemas.project import (
    ProjectAction,
    ProjectActionResponse,
    ProjectListResponse,
)
from projectsync.services import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects", tags=["projects"])


@router.get("", response_model=ProjectListResponse)
def list_projects(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    List the caller's projects, most recently opened first.
    """
    projects = project_service.list_projects(db, user_id)
    logger.info(f"Fetched {len(projects)} projects for user {user_id}")
    return {"projects": projects}


@router.post(
    "",
    response_model=ProjectActionResponse,
    response_model_exclude_none=True,
)
def project_action(
    body: ProjectAction,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Create-or-touch a project by ``url_id``, or update/delete by ``project_id``.
    """
    logger.debug(f"Project API - intent: {body.intent}")

    if body.intent == "create":
        if not body.url_id:
            raise ValidationError("url_id is required")
        project, existed = project_service.create_or_touch_project(
            db,
            user_id,
            url_id=body.url_id,
            title=body.title,
            description=body.description,
            metadata=body.metadata,
        )
        return {"project": project, "existed": existed}

    if body.intent == "update":
        if not body.project_id:
            raise ValidationError("project_id is required")
        project = project_service.update_project(
            db,
            user_id,
            body.project_id,
            title=body.title,
            description=body.description,
            metadata=body.metadata,
        )
        return {"project": project}

    if body.intent == "delete":
        if not body.project_id:
            raise ValidationError("project_id is required")
        project_service.delete_project(db, user_id, body.project_id)
        return {"success": True}

    raise ValidationError("Invalid intent")


@router.get("/{project_id}/load", response_model=ProjectLoadResponse)
def load_project(
    project_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """
    Load messages, files and workbench state in one call.

    ``project_id`` may be the project's UUID or its ``url_id``.
    """
    return project_service.load_project(db, user_id, project_id)
