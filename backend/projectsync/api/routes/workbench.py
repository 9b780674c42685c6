from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from projectsync.core.deps import get_db, get_current_user_id
from projectsync.schemas.workbench import WorkbenchResponse, WorkbenchSave
from projectsync.services import project_service

router = APIRouter(prefix="/projects/{project_id}/workbench", tags=["workbench"])


@router.get("", response_model=WorkbenchResponse)
def get_workbench(
    project_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    project = project_service.get_owned_project(db, project_id, user_id)
    return {"workbench": project_service.get_workbench(db, project)}


@router.post("", response_model=WorkbenchResponse)
def save_workbench(
    project_id: str,
    body: WorkbenchSave,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    project = project_service.get_owned_project(db, project_id, user_id)
    return {"workbench": project_service.save_workbench(db, project, body)}
