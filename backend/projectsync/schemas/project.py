"""
Project schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ProjectMetadata(BaseModel):
    git_url: Optional[str] = None
    git_branch: Optional[str] = None
    netlify_site_id: Optional[str] = None


class ProjectAction(BaseModel):
    """
    Body of ``POST /api/projects``.

    ``intent`` selects create (by ``url_id``), update or delete (by
    ``project_id``). It is validated in the handler so that an unknown
    intent is a 400, like a missing key.
    """
    intent: str = "create"
    url_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    project_id: Optional[str] = None
    metadata: Optional[ProjectMetadata] = None


class ProjectOut(BaseModel):
    id: UUID
    owner_id: str
    url_id: str
    title: str
    description: Optional[str] = None
    git_url: Optional[str] = None
    git_branch: Optional[str] = None
    netlify_site_id: Optional[str] = None
    last_opened_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProjectActionResponse(BaseModel):
    project: Optional[ProjectOut] = None
    existed: Optional[bool] = None
    success: Optional[bool] = None


class ProjectListResponse(BaseModel):
    projects: List[ProjectOut] = Field(default_factory=list)
