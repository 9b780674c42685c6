"""
Chat history session facade.

Persists the live conversation to the local history store after every
exchange and mirrors it to the remote project store on a best-effort basis,
starting the project's sync agents the first time a remote sync succeeds.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from projectsync.client.local_store import LocalHistoryStore
from projectsync.client.notifications import Navigator, Notifier
from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.state import ChatView, WorkbenchStore
from projectsync.client.sync_agents import SyncAgentRegistry
from projectsync.client.types import NO_STORE, FileMap, Message, Snapshot, annotation_value
from projectsync.core.exceptions import LocalStoreError, ProjectSyncError

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_TITLE = "Untitled Project"


def extract_chat_summary(message: Message) -> Optional[str]:
    """Return the summary carried by an assistant message's chatSummary annotation."""
    if message.role != "assistant":
        return None
    for annotation in message.annotations or []:
        if annotation_value(annotation, "type") == "chatSummary":
            return annotation_value(annotation, "summary")
    return None


class ChatHistory:
    def __init__(
        self,
        local_store: Optional[LocalHistoryStore],
        remote: RemoteProjectStore,
        agents: SyncAgentRegistry,
        view: ChatView,
        workbench: WorkbenchStore,
        notifier: Notifier,
        navigator: Navigator,
    ):
        self.local_store = local_store
        self.remote = remote
        self.agents = agents
        self.view = view
        self.workbench = workbench
        self.notifier = notifier
        self.navigator = navigator
        self.project_id: Optional[str] = None

    async def take_snapshot(
        self,
        chat_index: str,
        files: FileMap,
        chat_summary: Optional[str] = None,
    ) -> None:
        chat_id = self.view.chat_id
        if not chat_id or self.local_store is None:
            return

        snapshot = Snapshot(chat_index=chat_index, files=dict(files), summary=chat_summary)
        try:
            await self.local_store.set_snapshot(chat_id, snapshot)
        except LocalStoreError as e:
            logger.error(f"Failed to save snapshot: {e}")
            self.notifier.error("Failed to save chat snapshot.")

    async def store_message_history(self, messages: List[Message]) -> None:
        """
        Persist the conversation after an exchange.

        Messages tagged ``no-store`` are dropped. The archived prefix from
        the last restore is kept in front of the stored log.
        """
        if self.local_store is None or not messages:
            return

        messages = [m for m in messages if not m.has_tag(NO_STORE)]
        if not messages:
            return

        url_id = self.view.url_id
        artifact = self.workbench.first_artifact
        if not url_id and artifact is not None and artifact.id:
            url_id = await self.local_store.get_url_id(artifact.id)
            self.navigator.open_chat(url_id, replace=True)
            self.view.url_id = url_id

        if not self.view.description and artifact is not None and artifact.title:
            self.view.description = artifact.title

        if not self.view.initial_messages and not self.view.chat_id:
            next_id = await self.local_store.get_next_id()
            self.view.chat_id = next_id
            if not url_id:
                self.navigator.open_chat(next_id, replace=True)

        chat_id = self.view.chat_id
        if not chat_id:
            logger.error("Cannot save messages, chat ID is not set.")
            self.notifier.error("Failed to save chat messages: Chat ID missing.")
            return

        await self.take_snapshot(
            messages[-1].id, self.workbench.get_files(), extract_chat_summary(messages[-1])
        )

        await self.local_store.set_messages(
            chat_id,
            list(self.view.archived_messages) + messages,
            url_id,
            self.view.description,
            None,
            self.view.metadata,
        )

        try:
            await self._sync_remote(chat_id, url_id, messages)
        except ProjectSyncError as e:
            # background sync; never surfaced to the user
            logger.error(f"Failed to sync messages to remote store: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error syncing messages to remote store: {e}")

    async def _sync_remote(self, chat_id: str, url_id: Optional[str], messages: List[Message]) -> None:
        project = await self.remote.ensure_project(
            url_id or chat_id,
            title=self.view.description or DEFAULT_PROJECT_TITLE,
            description="Chat project",
        )
        project_id = str(project["id"])

        count = await self.remote.save_messages(project_id, messages)
        logger.info(f"Synced {count} messages to remote store (project: {project_id})")

        self.project_id = project_id
        self.agents.ensure_started(project_id, self.workbench.get_files, self.workbench.get_state)

    async def update_chat_metadata(self, metadata: Dict[str, Any]) -> None:
        chat_id = self.view.chat_id
        if self.local_store is None or not chat_id:
            return

        try:
            await self.local_store.set_messages(
                chat_id,
                self.view.initial_messages,
                self.view.url_id,
                self.view.description,
                None,
                metadata,
            )
            self.view.metadata = metadata
        except LocalStoreError as e:
            logger.error(f"Failed to update chat metadata: {e}")
            self.notifier.error("Failed to update chat metadata")

    async def duplicate_current_chat(self, list_item_id: Optional[str] = None) -> Optional[str]:
        source = self.view.chat_id or list_item_id
        if self.local_store is None or not source:
            return None

        try:
            new_url_id = await self.local_store.duplicate_chat(source)
        except LocalStoreError as e:
            logger.error(f"Failed to duplicate chat: {e}")
            self.notifier.error("Failed to duplicate chat")
            return None

        self.navigator.open_chat(new_url_id)
        self.notifier.success("Chat duplicated successfully")
        return new_url_id

    async def import_chat(
        self,
        description: str,
        messages: List[Message],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        if self.local_store is None:
            return None

        try:
            new_url_id = await self.local_store.create_chat_from_messages(description, messages, metadata)
        except LocalStoreError as e:
            self.notifier.error(f"Failed to import chat: {e}")
            return None

        self.navigator.open_chat(new_url_id)
        self.notifier.success("Chat imported successfully")
        return new_url_id

    async def export_chat(self, chat_id: Optional[str] = None, path: Optional[str] = None) -> Optional[dict]:
        """
        Export a chat as ``{messages, description, exportDate}``.

        Args:
            chat_id: Chat id or url id; defaults to the current chat's url id
            path: If given, also write the export there as indented JSON
        """
        chat_ref = chat_id or self.view.url_id
        if self.local_store is None or not chat_ref:
            return None

        chat = await self.local_store.get_messages(chat_ref)
        if chat is None:
            return None

        data = {
            "messages": [m.to_dict() for m in chat.messages],
            "description": chat.description,
            "exportDate": datetime.now(timezone.utc).isoformat(),
        }
        if path:
            await asyncio.to_thread(Path(path).write_text, json.dumps(data, indent=2), "utf-8")
            logger.info(f"Exported chat {chat.id} to {path}")
        return data
