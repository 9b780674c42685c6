from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class DirentIn(BaseModel):
    """One FileMap entry; folders carry no content."""
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["file", "folder"]
    content: Optional[str] = None
    is_binary: bool = Field(False, alias="isBinary")


class FilesSave(BaseModel):
    files: Dict[str, DirentIn]


class ProjectFileOut(BaseModel):
    id: UUID
    project_id: UUID
    file_path: str
    content: Optional[str] = None
    file_type: str
    mime_type: Optional[str] = None
    size_bytes: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FileListResponse(BaseModel):
    files: List[ProjectFileOut]
    count: int
    message: Optional[str] = None
