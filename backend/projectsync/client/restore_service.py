"""
Project restore from the remote store.

Used when the local history store has nothing for a chat: loads the whole
project over the API, puts its files into the workbench and the sandbox,
re-applies the workbench state and schedules the auto-start.
"""
import asyncio
import logging
from typing import Dict, Optional

from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.sandbox import Sandbox, auto_start, populate_sandbox
from projectsync.client.state import WorkbenchStore
from projectsync.client.tasks import run_in_background
from projectsync.client.types import FileMap, RemoteProject, RestoredProject, WorkbenchState
from projectsync.core.config import settings

logger = logging.getLogger(__name__)


class ProjectRestoreService:
    """
    Restores a project from the remote store.

    Concurrent ``restore_project`` calls for the same id share one restore.
    """

    def __init__(
        self,
        remote: RemoteProjectStore,
        sandbox: Sandbox,
        workbench: WorkbenchStore,
        auto_start_delay: Optional[float] = None,
    ):
        self.remote = remote
        self.sandbox = sandbox
        self.workbench = workbench
        self.auto_start_delay = (
            auto_start_delay if auto_start_delay is not None else settings.AUTO_START_DELAY_SECONDS
        )
        self._active_restores: Dict[str, asyncio.Task] = {}

    async def load_project(self, project_id: str) -> Optional[RemoteProject]:
        """
        Fetch a project's full state.

        Raises:
            RemoteStoreError: On any failure other than not-found
        """
        logger.info(f"Loading project from remote store: {project_id}")
        project = await self.remote.load_project(project_id)
        if project is None:
            logger.info("Project not found in remote store")
            return None

        logger.info(
            f"Loaded project {project.id}: {len(project.messages)} messages, "
            f"{len(project.files)} files, workbench: {'yes' if project.workbench else 'no'}"
        )
        return project

    async def restore_files(self, files: FileMap) -> None:
        if not files:
            logger.info("No files to restore")
            return

        logger.info(f"Restoring {len(files)} files to workbench")
        self.workbench.set_files(files)
        await populate_sandbox(self.sandbox, files)

    async def restore_workbench_state(self, state: Optional[WorkbenchState]) -> None:
        if state is None:
            logger.info("No workbench state to restore")
            return
        self.workbench.apply_state(state)
        logger.info("Workbench state restored")

    async def restore_project(self, project_id: str) -> Optional[RestoredProject]:
        """
        Restore a project, joining an in-flight restore of the same id.

        Returns:
            The messages, description and url id, or None if the project
            does not exist

        Raises:
            RemoteStoreError: If the project could not be loaded
        """
        existing = self._active_restores.get(project_id)
        if existing is not None:
            logger.info(f"Project restore already in progress for {project_id}, reusing it")
            return await asyncio.shield(existing)

        task = asyncio.get_running_loop().create_task(self._do_restore_project(project_id))
        self._active_restores[project_id] = task
        task.add_done_callback(lambda _: self._active_restores.pop(project_id, None))
        return await asyncio.shield(task)

    async def _do_restore_project(self, project_id: str) -> Optional[RestoredProject]:
        logger.info(f"Starting full project restore for: {project_id}")
        project = await self.load_project(project_id)
        if project is None:
            return None

        # files first so the workbench state can select one of them
        await self.restore_files(project.files)
        await self.restore_workbench_state(project.workbench)

        run_in_background(self._delayed_auto_start(project.files))

        logger.info("Project restored successfully")
        return RestoredProject(
            messages=project.messages,
            description=project.description,
            url_id=project.url_id,
        )

    async def _delayed_auto_start(self, files: FileMap) -> None:
        await asyncio.sleep(self.auto_start_delay)
        logger.info("Auto-starting restored project")
        await auto_start(self.sandbox, files)
