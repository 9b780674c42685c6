"""
Client session wiring.

Builds the restore/sync components for one signed-in user from ``settings``
and owns their teardown.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from projectsync.client.chat_history import ChatHistory
from projectsync.client.local_store import LocalHistoryStore
from projectsync.client.notifications import LoggingNavigator, LoggingNotifier, Navigator, Notifier
from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.restore import RestoreCoordinator
from projectsync.client.restore_service import ProjectRestoreService
from projectsync.client.sandbox import LocalSandbox, Sandbox
from projectsync.client.state import ChatView, WorkbenchStore
from projectsync.client.sync_agents import SyncAgentRegistry
from projectsync.client.tasks import drain_background_tasks
from projectsync.core.config import settings
from projectsync.core.exceptions import LocalStoreError

logger = logging.getLogger(__name__)


@dataclass
class ClientSession:
    local_store: Optional[LocalHistoryStore]
    remote: RemoteProjectStore
    sandbox: Sandbox
    workbench: WorkbenchStore
    view: ChatView
    agents: SyncAgentRegistry
    restore_service: ProjectRestoreService
    coordinator: RestoreCoordinator
    history: ChatHistory

    @classmethod
    def create(
        cls,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        local_store_url: Optional[str] = None,
        sandbox: Optional[Sandbox] = None,
        notifier: Optional[Notifier] = None,
        navigator: Optional[Navigator] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ClientSession":
        notifier = notifier or LoggingNotifier()
        navigator = navigator or LoggingNavigator()

        local_store = None
        if settings.PERSISTENCE_ENABLED:
            try:
                local_store = LocalHistoryStore(local_store_url)
            except LocalStoreError as e:
                logger.error(f"Chat persistence initialization failed: {e}")

        remote = RemoteProjectStore(base_url=base_url, token=token, client=http_client)
        sandbox = sandbox or LocalSandbox()
        workbench = WorkbenchStore()
        view = ChatView()
        agents = SyncAgentRegistry(remote)
        restore_service = ProjectRestoreService(remote, sandbox, workbench)

        return cls(
            local_store=local_store,
            remote=remote,
            sandbox=sandbox,
            workbench=workbench,
            view=view,
            agents=agents,
            restore_service=restore_service,
            coordinator=RestoreCoordinator(
                local_store, restore_service, sandbox, workbench, notifier, navigator, view=view
            ),
            history=ChatHistory(local_store, remote, agents, view, workbench, notifier, navigator),
        )

    def unload(self) -> None:
        """Queue a last best-effort push of files and workbench state."""
        self.agents.sync_now_all()

    async def aclose(self) -> None:
        self.agents.stop_all()
        await drain_background_tasks()
        await self.remote.aclose()
        if self.local_store is not None:
            self.local_store.close()
