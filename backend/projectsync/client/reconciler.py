"""
Snapshot reconciliation.

Given a chat's full message log, its stored snapshot and an optional rewind
target, decide which messages form the active conversation and which are
archived behind the snapshot. When the snapshot sits after the first
message, two synthetic messages replay the snapshot's files so the sandbox
can be rebuilt without the archived history.

``reconcile`` performs no I/O and never mutates its inputs.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from projectsync.client.commands import (
    ProjectCommands,
    create_command_actions_string,
    detect_project_commands,
    file_contents,
)
from projectsync.client.types import HIDDEN, NO_STORE, Message, Snapshot

RESTORE_REQUEST_CONTENT = "Restore project from snapshot"
RESTORE_FOLLOWUP = (
    "Restored your chat from a snapshot. "
    "You can revert this message to load the full chat history."
)

CommandDetector = Callable[[list], ProjectCommands]


@dataclass
class Reconciliation:
    archived_messages: List[Message] = field(default_factory=list)
    visible_messages: List[Message] = field(default_factory=list)
    starting_idx: int = -1
    ending_idx: int = 0
    snapshot_index: int = -1

    @property
    def restored_from_snapshot(self) -> bool:
        """True when synthetic replay messages lead ``visible_messages``."""
        return self.starting_idx > 0


def _index_of(messages: Sequence[Message], message_id: Optional[str]) -> int:
    if not message_id:
        return -1
    for index, message in enumerate(messages):
        if message.id == message_id:
            return index
    return -1


def build_restore_artifact(snapshot: Snapshot, commands: ProjectCommands) -> str:
    """Render every snapshot file as a file action plus the command actions."""
    actions = []
    for path, dirent in snapshot.files.items():
        if dirent is None or not dirent.is_file:
            continue
        actions.append(
            f'<boltAction type="file" filePath="{path}">\n{dirent.content}\n</boltAction>'
        )

    return (
        f"{RESTORE_FOLLOWUP}\n"
        '<boltArtifact id="restored-project-setup" title="Restored Project & Setup" type="bundled">\n'
        + "\n".join(actions)
        + f"{create_command_actions_string(commands)}\n"
        "</boltArtifact>\n"
    )


def restore_messages(
    anchor: Message,
    snapshot: Snapshot,
    commands: ProjectCommands,
) -> List[Message]:
    """
    Build the hidden restore request and the replay reply for ``anchor``.

    Both carry ``no-store`` so they are never written back to durable storage.
    """
    annotations: list = [NO_STORE]
    if snapshot.summary:
        annotations.append(
            {"chatId": anchor.id, "type": "chatSummary", "summary": snapshot.summary}
        )

    return [
        Message(
            id=f"{anchor.id}-restore-request",
            role="user",
            content=RESTORE_REQUEST_CONTENT,
            annotations=[NO_STORE, HIDDEN],
        ),
        Message(
            id=anchor.id,
            role="assistant",
            content=build_restore_artifact(snapshot, commands),
            annotations=annotations,
        ),
    ]


def reconcile(
    messages: Sequence[Message],
    snapshot: Optional[Snapshot] = None,
    rewind_to: Optional[str] = None,
    detect_commands: CommandDetector = detect_project_commands,
) -> Reconciliation:
    """
    Compute the archived/visible split of ``messages``.

    Args:
        messages: The chat's full ordered log
        snapshot: Stored snapshot, or None when the chat has none
        rewind_to: Id of the message to treat as the end of history
        detect_commands: Maps ``(path, content)`` pairs to project commands

    Returns:
        Reconciliation with the archived prefix and the visible window
    """
    snapshot = snapshot or Snapshot()
    log = list(messages)

    if rewind_to:
        # an unknown rewind target truncates everything
        ending_idx = _index_of(log, rewind_to) + 1
    else:
        ending_idx = len(log)

    snapshot_index = _index_of(log, snapshot.chat_index)

    starting_idx = -1
    if 0 <= snapshot_index < ending_idx:
        starting_idx = snapshot_index

    # Rewinding exactly onto the snapshot message shows the full history
    # instead of replaying zero messages on top of the snapshot.
    if snapshot_index > 0 and log[snapshot_index].id == rewind_to:
        starting_idx = -1

    visible = log[starting_idx + 1:ending_idx]
    archived = log[:starting_idx + 1] if starting_idx >= 0 else []

    if starting_idx > 0:
        commands = detect_commands(file_contents(snapshot.files))
        visible = restore_messages(log[snapshot_index], snapshot, commands) + visible

    return Reconciliation(
        archived_messages=archived,
        visible_messages=visible,
        starting_idx=starting_idx,
        ending_idx=ending_idx,
        snapshot_index=snapshot_index,
    )
