from typing import Dict, List, Optional

from pydantic import BaseModel

from projectsync.schemas.message import LoadedMessage
from projectsync.schemas.project import ProjectOut
from projectsync.schemas.workbench import WorkbenchOut


class LoadedDirent(BaseModel):
    type: str = "file"
    content: str = ""
    isBinary: bool = False


class ProjectLoadResponse(BaseModel):
    """Full project state used to resume a session on another device."""
    project: ProjectOut
    messages: List[LoadedMessage]
    files: Dict[str, LoadedDirent]
    workbench: Optional[WorkbenchOut] = None
