from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from projectsync.core.deps import get_db, get_current_user_id
from projectsync.schemas.user_profile import (
    UserProfileResponse,
    UserProfileSave,
    UserProfileSyncResponse,
)
from projectsync.services import project_service

router = APIRouter(prefix="/user-profile", tags=["user-profile"])


@router.get("", response_model=UserProfileResponse)
def get_user_profile(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    return {"profile": project_service.get_profile(db, user_id)}


@router.post("", response_model=UserProfileSyncResponse)
def sync_user_profile(
    body: UserProfileSave,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Create or update the caller's profile on login."""
    profile = project_service.upsert_profile(db, user_id, body)
    return {"success": True, "profile": profile}
