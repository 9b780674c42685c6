import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from projectsync.core.deps import get_db, get_current_user_id
from projectsync.schemas.file import FileListResponse, FilesSave
from projectsync.services import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/files", tags=["files"])


@router.get("", response_model=FileListResponse)
def list_files(
    project_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List a project's files. Directories are never stored."""
    project = project_service.get_owned_project(db, project_id, user_id)
    files = project_service.list_files(db, project)
    return {"files": files, "count": len(files)}


@router.post("", response_model=FileListResponse)
def save_files(
    project_id: str,
    body: FilesSave,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Upsert a FileMap, one row per file path."""
    project = project_service.get_owned_project(db, project_id, user_id)
    saved = project_service.save_files(db, project, body.files)
    if not saved:
        return {"files": [], "count": 0, "message": "No files to save"}
    return {"files": saved, "count": len(saved)}
