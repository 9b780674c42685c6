"""Core data models shared by the restore and sync engine."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

NO_STORE = "no-store"
HIDDEN = "hidden"

ROLES = ("user", "assistant", "system")
VIEWS = ("code", "diff", "preview")


@dataclass
class Message:
    """A single chat message as the client keeps it."""

    id: str
    role: str  # "user" | "assistant" | "system"
    content: str
    parts: Optional[Any] = None
    tool_invocations: Optional[Any] = None
    # string tags ("no-store", "hidden") and structured objects ({"type": "chatSummary", ...})
    annotations: Optional[List[Any]] = None

    def has_tag(self, tag: str) -> bool:
        return bool(self.annotations) and tag in self.annotations

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"id": self.id, "role": self.role, "content": self.content}
        if self.parts is not None:
            data["parts"] = self.parts
        if self.tool_invocations is not None:
            data["toolInvocations"] = self.tool_invocations
        if self.annotations is not None:
            data["annotations"] = list(self.annotations)
        return data

    def to_sync_dict(self) -> dict:
        """Wire shape expected by ``POST /api/projects/:id/messages``."""
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "parts": self.parts,
            "toolCalls": self.tool_invocations,
            "annotations": self.annotations,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=data["id"],
            role=data["role"],
            content=data.get("content") or "",
            parts=data.get("parts"),
            tool_invocations=data.get("toolInvocations", data.get("toolCalls")),
            annotations=data.get("annotations"),
        )


@dataclass
class Dirent:
    """A FileMap entry: a folder, or a file with text (or base64) content."""

    type: str  # "file" | "folder"
    content: str = ""
    is_binary: bool = False

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    @property
    def is_folder(self) -> bool:
        return self.type == "folder"

    def to_dict(self) -> dict:
        if self.is_folder:
            return {"type": "folder"}
        return {"type": "file", "content": self.content, "isBinary": self.is_binary}

    @classmethod
    def from_dict(cls, data: dict) -> "Dirent":
        if data.get("type") == "folder":
            return cls(type="folder")
        return cls(
            type="file",
            content=data.get("content") or "",
            is_binary=bool(data.get("isBinary", False)),
        )


FileMap = Dict[str, Optional[Dirent]]


def file_map_to_dict(files: FileMap) -> dict:
    return {path: dirent.to_dict() for path, dirent in files.items() if dirent is not None}


def file_map_from_dict(data: Optional[dict]) -> FileMap:
    return {path: Dirent.from_dict(value) for path, value in (data or {}).items() if value}


@dataclass
class Snapshot:
    """Point-in-time capture of the file tree at a message."""

    chat_index: str = ""  # id of the message the snapshot was taken at
    files: FileMap = field(default_factory=dict)
    summary: Optional[str] = None

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {
            "chatIndex": self.chat_index,
            "files": file_map_to_dict(self.files),
        }
        if self.summary is not None:
            data["summary"] = self.summary
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Snapshot":
        data = data or {}
        return cls(
            chat_index=data.get("chatIndex") or "",
            files=file_map_from_dict(data.get("files")),
            summary=data.get("summary"),
        )


@dataclass
class WorkbenchState:
    """Editor/workbench UI state synced per project."""

    selected_file: Optional[str] = None
    open_files: List[str] = field(default_factory=list)
    current_view: Optional[str] = None  # "code" | "diff" | "preview"
    show_workbench: bool = False
    terminal_history: List[str] = field(default_factory=list)
    preview_urls: List[str] = field(default_factory=list)

    def to_payload(self) -> dict:
        return {
            "selected_file": self.selected_file,
            "open_files": list(self.open_files),
            "current_view": self.current_view,
            "show_workbench": self.show_workbench,
            "terminal_history": list(self.terminal_history),
            "preview_urls": list(self.preview_urls),
        }

    @classmethod
    def from_row(cls, row: dict) -> "WorkbenchState":
        return cls(
            selected_file=row.get("selected_file"),
            open_files=list(row.get("open_files") or []),
            current_view=row.get("current_view"),
            show_workbench=bool(row.get("show_workbench", False)),
            terminal_history=list(row.get("terminal_history") or []),
            preview_urls=list(row.get("preview_urls") or []),
        )


@dataclass
class ChatHistoryItem:
    """A chat transcript record in the local history store."""

    id: str
    messages: List[Message]
    url_id: Optional[str] = None
    description: Optional[str] = None
    timestamp: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class RemoteProject:
    """Project data returned by ``GET /api/projects/:id/load``."""

    id: str
    url_id: str
    title: str
    description: Optional[str]
    messages: List[Message]
    files: FileMap
    workbench: Optional[WorkbenchState]


@dataclass
class RestoredProject:
    messages: List[Message]
    description: Optional[str]
    url_id: str


def annotation_value(annotation: Any, key: str) -> Union[str, None]:
    if isinstance(annotation, dict):
        return annotation.get(key)
    return None
