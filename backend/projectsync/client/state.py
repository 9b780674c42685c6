"""
In-memory session state shared by the restore and sync components.

``WorkbenchStore`` holds the authoritative file tree and editor state the
sync agents push; ``ChatView`` is what a restore publishes for the chat UI.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from projectsync.client.types import FileMap, Message, WorkbenchState


@dataclass
class Artifact:
    """The first artifact of a chat; its id seeds the chat's url id."""

    id: str
    title: Optional[str] = None


@dataclass
class WorkbenchStore:
    files: FileMap = field(default_factory=dict)
    selected_file: Optional[str] = None
    open_files: List[str] = field(default_factory=list)
    current_view: str = "code"
    show_workbench: bool = False
    terminal_history: List[str] = field(default_factory=list)
    preview_urls: List[str] = field(default_factory=list)
    first_artifact: Optional[Artifact] = None

    def set_files(self, files: FileMap) -> None:
        self.files = dict(files)

    def get_files(self) -> FileMap:
        return self.files

    def apply_state(self, state: WorkbenchState) -> None:
        """Adopt a persisted workbench state; unset fields keep their value."""
        if state.current_view:
            self.current_view = state.current_view
        self.show_workbench = state.show_workbench
        if state.selected_file:
            self.selected_file = state.selected_file

    def get_state(self) -> WorkbenchState:
        return WorkbenchState(
            selected_file=self.selected_file,
            open_files=list(self.open_files),
            current_view=self.current_view,
            show_workbench=self.show_workbench,
            terminal_history=list(self.terminal_history),
            preview_urls=list(self.preview_urls),
        )


@dataclass
class ChatView:
    """Chat state published to the UI after a restore."""

    chat_id: Optional[str] = None
    url_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    initial_messages: List[Message] = field(default_factory=list)
    archived_messages: List[Message] = field(default_factory=list)
    ready: bool = False
