import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from projectsync.core.deps import get_db, get_current_user_id
from projectsync.schemas.message import MessageListResponse, MessagesSave
from projectsync.services import project_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/projects/{project_id}/messages", tags=["messages"])


@router.get("", response_model=MessageListResponse)
def list_messages(
    project_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List a project's messages in creation order."""
    project = project_service.get_owned_project(db, project_id, user_id)
    messages = project_service.list_messages(db, project)
    return {"messages": messages, "count": len(messages)}


@router.post("", response_model=MessageListResponse)
def save_messages(
    project_id: str,
    body: MessagesSave,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Append or replace messages, keyed on the client message id."""
    project = project_service.get_owned_project(db, project_id, user_id)
    saved = project_service.save_messages(db, project, body.messages)
    return {"messages": saved, "count": len(saved)}
