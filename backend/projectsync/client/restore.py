"""
Restore coordination for an activated chat session.

``RestoreCoordinator.activate`` loads a chat from the local history store,
falling back to the remote project store, publishes the result to the chat
view and rebuilds the sandbox. The coordinator always ends in ``READY`` so
the UI never stays stuck loading.
"""
import asyncio
import enum
import logging
from typing import Dict, Optional, Set, Union

from projectsync.client.local_store import LocalHistoryStore
from projectsync.client.notifications import Navigator, Notifier
from projectsync.client.reconciler import reconcile
from projectsync.client.restore_service import ProjectRestoreService
from projectsync.client.sandbox import Sandbox, auto_start, populate_sandbox
from projectsync.client.state import ChatView, WorkbenchStore
from projectsync.client.tasks import run_in_background
from projectsync.client.types import ChatHistoryItem, FileMap, RestoredProject, Snapshot
from projectsync.core.config import settings
from projectsync.core.exceptions import RestoreError

logger = logging.getLogger(__name__)


class RestoreState(str, enum.Enum):
    IDLE = "idle"
    RESTORING = "restoring"
    READY = "ready"


class AutoStartState(str, enum.Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    DONE = "done"


State = Union[RestoreState, AutoStartState]

ALLOWED_TRANSITIONS: Dict[State, Set[State]] = {
    RestoreState.IDLE: {RestoreState.RESTORING, RestoreState.READY},
    RestoreState.RESTORING: {RestoreState.READY},
    RestoreState.READY: {RestoreState.RESTORING, RestoreState.READY},
    AutoStartState.PENDING: {AutoStartState.PENDING, AutoStartState.IN_FLIGHT},
    AutoStartState.IN_FLIGHT: {AutoStartState.PENDING, AutoStartState.DONE},
    AutoStartState.DONE: {AutoStartState.PENDING},
}


class RestoreCoordinator:
    """
    Restores one chat session at a time.

    A restore holds the coordinator's lock from activation until
    ``lock_grace`` seconds after it completes, so that a second activation
    cannot race the delayed auto-start. On error the lock is released at
    once. Activations arriving while the lock is held are dropped.
    """

    def __init__(
        self,
        local_store: Optional[LocalHistoryStore],
        restore_service: ProjectRestoreService,
        sandbox: Sandbox,
        workbench: WorkbenchStore,
        notifier: Notifier,
        navigator: Navigator,
        view: Optional[ChatView] = None,
        persistence_enabled: Optional[bool] = None,
        auto_start_delay: Optional[float] = None,
        lock_grace: Optional[float] = None,
    ):
        self.local_store = local_store
        self.restore_service = restore_service
        self.sandbox = sandbox
        self.workbench = workbench
        self.notifier = notifier
        self.navigator = navigator
        self.view = view or ChatView()
        self.persistence_enabled = (
            settings.PERSISTENCE_ENABLED if persistence_enabled is None else persistence_enabled
        )
        self.auto_start_delay = (
            settings.AUTO_START_DELAY_SECONDS if auto_start_delay is None else auto_start_delay
        )
        self.lock_grace = settings.RESTORE_LOCK_GRACE_SECONDS if lock_grace is None else lock_grace

        self.state = RestoreState.IDLE
        self.auto_start_state = AutoStartState.PENDING
        # generation of the activation holding the lock, None when free
        self._lock_owner: Optional[int] = None
        self._generation = 0

    @property
    def locked(self) -> bool:
        return self._lock_owner is not None

    def _transition(self, target: State) -> None:
        current = self.auto_start_state if isinstance(target, AutoStartState) else self.state
        if target not in ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(f"Invalid restore transition: {current.value} -> {target.value}")

        logger.debug(f"Restore transition: {current.value} -> {target.value}")
        if isinstance(target, AutoStartState):
            self.auto_start_state = target
        else:
            self.state = target
            self.view.ready = target == RestoreState.READY

    def _release_lock(self, generation: int) -> None:
        # a delayed release must not free a lock taken by a later activation
        if self._lock_owner == generation:
            self._lock_owner = None

    async def activate(self, chat_id: Optional[str], rewind_to: Optional[str] = None) -> Optional[ChatView]:
        """
        Restore the chat identified by ``chat_id`` (a chat id or url id).

        Args:
            chat_id: Chat to restore; None for a new chat
            rewind_to: Message id to treat as the end of history

        Returns:
            The published chat view, or None if a restore is already running
        """
        if self.locked:
            logger.info("Restore already in progress, skipping duplicate")
            return None

        self._transition(AutoStartState.PENDING)

        if self.local_store is None or not self.persistence_enabled:
            self._transition(RestoreState.READY)
            if self.persistence_enabled:
                logger.error("Chat persistence initialization failed")
                self.notifier.error("Chat persistence is unavailable")
            return self.view

        if not chat_id:
            self._transition(RestoreState.READY)
            return self.view

        self._generation += 1
        generation = self._generation
        self._lock_owner = generation
        self._transition(RestoreState.RESTORING)

        failed = False
        try:
            await self._restore(chat_id, rewind_to, generation)
        except Exception as e:
            failed = True
            logger.exception(f"Failed to load chat messages or snapshot: {e}")
            self.notifier.error(f"Failed to load chat: {e}")
        finally:
            self._transition(RestoreState.READY)
            if failed:
                self._release_lock(generation)
            else:
                asyncio.get_running_loop().call_later(
                    self.lock_grace, self._release_lock, generation
                )

        return self.view

    async def _restore(self, chat_id: str, rewind_to: Optional[str], generation: int) -> None:
        stored, snapshot = await asyncio.gather(
            self.local_store.get_messages(chat_id),
            self.local_store.get_snapshot(chat_id),
        )

        if stored is not None and stored.messages:
            await self._restore_local(stored, snapshot, rewind_to, generation)
        else:
            logger.info("No local messages, trying the remote project store")
            await self._restore_remote(chat_id)

    # =========================================================================
    # Local path
    # =========================================================================

    async def _restore_local(
        self,
        stored: ChatHistoryItem,
        snapshot: Optional[Snapshot],
        rewind_to: Optional[str],
        generation: int,
    ) -> None:
        result = reconcile(stored.messages, snapshot, rewind_to)

        self.view.archived_messages = result.archived_messages
        self.view.initial_messages = result.visible_messages
        self.view.url_id = stored.url_id
        self.view.description = stored.description
        self.view.chat_id = stored.id
        self.view.metadata = stored.metadata

        if snapshot is None or not snapshot.files:
            return

        logger.info("Restoring files from local snapshot to sandbox")
        self.workbench.set_files(snapshot.files)
        try:
            await populate_sandbox(self.sandbox, snapshot.files)
        except Exception as e:
            raise RestoreError(f"Failed to restore snapshot to sandbox: {e}") from e

        self._schedule_auto_start(snapshot.files, generation)

    def _schedule_auto_start(self, files: FileMap, generation: int) -> None:
        if self.auto_start_state != AutoStartState.PENDING:
            return
        self._transition(AutoStartState.IN_FLIGHT)
        self.notifier.info("Starting application...")
        run_in_background(self._delayed_auto_start(files, generation))

    async def _delayed_auto_start(self, files: FileMap, generation: int) -> None:
        try:
            await asyncio.sleep(self.auto_start_delay)
            logger.info("Auto-starting application")
            await auto_start(self.sandbox, files)
        finally:
            if self._generation == generation and self.auto_start_state == AutoStartState.IN_FLIGHT:
                self._transition(AutoStartState.DONE)

    # =========================================================================
    # Remote fallback
    # =========================================================================

    async def _restore_remote(self, chat_id: str) -> None:
        try:
            restored = await self.restore_service.restore_project(chat_id)
        except Exception as e:
            # keep the current view; the user sees the error
            logger.error(f"Error restoring from remote store: {e}")
            self.notifier.error(f"Failed to restore project: {e}")
            return

        if restored is None or not restored.messages:
            logger.info("Project not found in remote store, redirecting home")
            self.navigator.redirect_home()
            return

        logger.info(f"Restored {len(restored.messages)} messages from remote store")
        self.view.archived_messages = []
        self.view.initial_messages = restored.messages
        self.view.url_id = restored.url_id
        self.view.description = restored.description
        self.view.chat_id = chat_id

        await self._write_back(chat_id, restored)

    async def _write_back(self, chat_id: str, restored: RestoredProject) -> None:
        """Cache a remote restore locally unless a local record already exists."""
        try:
            by_id = await self.local_store.get_messages_by_id(chat_id)
            by_url_id = None
            if restored.url_id:
                by_url_id = await self.local_store.get_messages_by_url_id(restored.url_id)
            existing = by_id or by_url_id

            if existing is None or not existing.messages:
                await self.local_store.set_messages(
                    chat_id,
                    restored.messages,
                    restored.url_id,
                    restored.description,
                )
                logger.info("Saved restored messages to local history store")
                return

            logger.info("Chat already exists locally (id or url id match), skipping save")
            if existing.id != chat_id:
                logger.info(f"Using existing chat id: {existing.id} instead of {chat_id}")
                self.view.chat_id = existing.id
        except Exception as e:
            logger.warning(f"Failed to save to local history store (non-critical): {e}")
