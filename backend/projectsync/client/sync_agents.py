"""
Periodic sync agents.

Each agent pushes one piece of in-memory state (the file tree or the
workbench state) to the remote project store on an interval, skipping the
write when the canonical serialization matches the last successful one.
Agents are plain objects bound to a ``RemoteProjectStore``; the registry
scopes them to the active project.
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.tasks import run_in_background
from projectsync.client.types import FileMap, WorkbenchState, file_map_to_dict
from projectsync.core.config import settings
from projectsync.core.exceptions import RemoteStoreError, SyncError

logger = logging.getLogger(__name__)


def canonical_json(payload: Any) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class PeriodicSyncAgent(ABC):
    """
    Base class for interval-driven state pushers.

    Subclasses define the endpoint, the payload shape and the store call.
    """

    name = "state"

    def __init__(self, remote: RemoteProjectStore, interval: Optional[float] = None):
        self.remote = remote
        self.interval = interval if interval is not None else settings.SYNC_INTERVAL_SECONDS
        self.project_id: Optional[str] = None
        self._state_getter: Optional[Callable[[], Any]] = None
        # Shared by the interval path and sync_now without mutual exclusion
        self._last_synced: str = ""
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    def endpoint(self, project_id: str) -> str:
        """API path (below the API prefix) the state is posted to."""
        ...

    @abstractmethod
    def build_payload(self, state: Any) -> dict:
        ...

    @abstractmethod
    async def push(self, project_id: str, state: Any) -> None:
        ...

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, project_id: str, state_getter: Callable[[], Any]) -> asyncio.Task:
        """
        Bind to a project, sync once immediately, then every ``interval`` seconds.

        Returns:
            The task running the initial sync
        """
        self.stop()
        self.project_id = project_id
        self._state_getter = state_getter
        logger.info(f"{self.name.capitalize()} sync started for project: {project_id}")

        initial = run_in_background(self.sync())
        self._task = asyncio.get_running_loop().create_task(self._run_interval())
        return initial

    async def _run_interval(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.sync()
            except Exception as e:
                logger.exception(f"Unexpected {self.name} sync failure: {e}")

    def stop(self) -> None:
        """Cancel the interval. Safe to call more than once."""
        if self._task is not None:
            self._task.cancel()
            self._task = None
            logger.info(f"{self.name.capitalize()} sync stopped")

    def _snapshot(self):
        if not self.project_id or self._state_getter is None:
            return None, None
        state = self._state_getter()
        return state, canonical_json(self.build_payload(state))

    async def _sync_once(self) -> bool:
        try:
            state, serialized = self._snapshot()
        except Exception as e:
            raise SyncError(f"Failed to read {self.name} state: {e}") from e
        if serialized is None:
            logger.warning(f"No project or state getter set for {self.name} sync")
            return False

        if serialized == self._last_synced:
            logger.debug(f"No {self.name} changes to sync")
            return False

        try:
            await self.push(self.project_id, state)
        except Exception as e:
            # any push failure, including malformed responses, is retried next tick
            raise SyncError(f"Failed to sync {self.name}: {e}") from e

        self._last_synced = serialized
        logger.info(f"Synced {self.name} for project {self.project_id}")
        return True

    async def sync(self) -> bool:
        """
        Push the current state if it changed since the last successful push.

        Failures are logged, never raised.

        Returns:
            True if a write was performed
        """
        try:
            return await self._sync_once()
        except SyncError as e:
            logger.error(str(e))
            return False

    async def force_save(self) -> bool:
        """Push the current state even if it is unchanged."""
        self._last_synced = ""
        return await self.sync()

    def sync_now(self) -> bool:
        """
        Queue a fire-and-forget push for the unload path.

        The last-synced marker is left untouched since delivery is never
        confirmed.

        Returns:
            True if a request was queued
        """
        try:
            _, serialized = self._snapshot()
        except Exception as e:
            logger.error(f"Error in {self.name} sync_now: {e}")
            return False

        if serialized is None or serialized == self._last_synced:
            logger.debug(f"No {self.name} changes to sync on unload")
            return False

        sent = self.remote.send_beacon(self.endpoint(self.project_id), json.loads(serialized))
        if sent:
            logger.info(f"{self.name.capitalize()} queued for sync")
        else:
            logger.warning(f"Failed to queue {self.name} for sync")
        return sent


class FileSyncAgent(PeriodicSyncAgent):
    name = "files"

    def endpoint(self, project_id: str) -> str:
        return f"/projects/{project_id}/files"

    def build_payload(self, state: FileMap) -> dict:
        return {"files": file_map_to_dict(state)}

    async def push(self, project_id: str, state: FileMap) -> None:
        count = await self.remote.save_files(project_id, state)
        logger.debug(f"Server stored {count} files")


class WorkbenchSyncAgent(PeriodicSyncAgent):
    name = "workbench state"

    def endpoint(self, project_id: str) -> str:
        return f"/projects/{project_id}/workbench"

    def build_payload(self, state: WorkbenchState) -> dict:
        return state.to_payload()

    async def push(self, project_id: str, state: WorkbenchState) -> None:
        await self.remote.save_workbench(project_id, state)

    async def load_state(self, project_id: str) -> Optional[WorkbenchState]:
        """Fetch the stored workbench state; None when absent or unreachable."""
        try:
            row = await self.remote.get_workbench(project_id)
        except RemoteStoreError as e:
            logger.error(f"Failed to load workbench state: {e}")
            return None

        if not isinstance(row, dict) or not row:
            logger.info("No workbench state found for project")
            return None
        return WorkbenchState.from_row(row)


@dataclass
class ProjectAgents:
    files: FileSyncAgent
    workbench: WorkbenchSyncAgent

    def stop(self) -> None:
        self.files.stop()
        self.workbench.stop()


class SyncAgentRegistry:
    """
    Starts sync agents lazily, at most once per project id.

    Only the most recently started project keeps agents; starting another
    project stops and drops them, since the state getters read the live
    workbench.
    """

    def __init__(self, remote: RemoteProjectStore, interval: Optional[float] = None):
        self.remote = remote
        self.interval = interval
        self._agents: Dict[str, ProjectAgents] = {}

    def get(self, project_id: str) -> Optional[ProjectAgents]:
        return self._agents.get(project_id)

    def ensure_started(
        self,
        project_id: str,
        files_getter: Callable[[], FileMap],
        state_getter: Callable[[], WorkbenchState],
    ) -> ProjectAgents:
        existing = self._agents.get(project_id)
        if existing is not None:
            return existing

        for other_id in list(self._agents):
            self._agents.pop(other_id).stop()

        agents = ProjectAgents(
            files=FileSyncAgent(self.remote, self.interval),
            workbench=WorkbenchSyncAgent(self.remote, self.interval),
        )
        agents.files.start(project_id, files_getter)
        agents.workbench.start(project_id, state_getter)
        self._agents[project_id] = agents
        return agents

    def sync_now_all(self) -> None:
        """Unload path: queue a best-effort push from every running agent."""
        for agents in self._agents.values():
            if agents.files.running:
                agents.files.sync_now()
            if agents.workbench.running:
                agents.workbench.sync_now()

    def stop_all(self) -> None:
        for agents in self._agents.values():
            agents.stop()
        self._agents.clear()
