from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel


ViewName = Literal["code", "diff", "preview"]


class WorkbenchSave(BaseModel):
    selected_file: Optional[str] = None
    open_files: Optional[List[str]] = None
    current_view: Optional[ViewName] = None
    show_workbench: Optional[bool] = None
    terminal_history: Optional[List[str]] = None
    preview_urls: Optional[List[str]] = None


class WorkbenchOut(BaseModel):
    id: UUID
    project_id: UUID
    selected_file: Optional[str] = None
    open_files: List[str] = []
    current_view: Optional[ViewName] = None
    show_workbench: bool = False
    terminal_history: List[str] = []
    preview_urls: List[str] = []
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkbenchResponse(BaseModel):
    workbench: Optional[WorkbenchOut] = None
