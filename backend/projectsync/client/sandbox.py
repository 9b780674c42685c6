"""
Execution sandbox abstraction and the routines that populate and start it.

Provides a unified interface for the isolated filesystem + process runtime
that user code runs in. ``LocalSandbox`` backs it with a directory on disk
and shell subprocesses.
"""

import asyncio
import base64
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Union

from projectsync.client.commands import ProjectCommands, detect_project_commands, file_contents
from projectsync.client.tasks import run_in_background
from projectsync.client.types import Dirent, FileMap
from projectsync.core.config import settings
from projectsync.core.exceptions import SandboxError

logger = logging.getLogger(__name__)

DEFAULT_WORKDIR = "/home/project"


class SandboxProcess(ABC):
    """A process spawned inside the sandbox."""

    @abstractmethod
    def output(self) -> AsyncIterator[str]:
        """Yield decoded output chunks until the process closes its output."""
        ...

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""
        ...


class Sandbox(ABC):
    """Abstract base class for sandbox filesystem and process operations."""

    @property
    @abstractmethod
    def workdir(self) -> str:
        """Absolute root path that FileMap keys are expressed against."""
        ...

    @abstractmethod
    async def mkdir(self, path: str, recursive: bool = True) -> None:
        """Create a directory relative to the workdir."""
        ...

    @abstractmethod
    async def read_file(self, path: str, encoding: Optional[str] = "utf-8") -> Union[str, bytes]:
        """
        Read a file relative to the workdir.

        Args:
            path: Relative path of the file
            encoding: Text encoding, or None to read raw bytes
        """
        ...

    @abstractmethod
    async def write_file(
        self,
        path: str,
        content: Union[str, bytes],
        encoding: Optional[str] = "utf-8",
    ) -> None:
        """Write a file relative to the workdir; ``encoding=None`` writes bytes."""
        ...

    @abstractmethod
    async def readdir(self, path: str = ".") -> List[str]:
        """List entry names of a directory relative to the workdir."""
        ...

    @abstractmethod
    async def spawn(self, command: str) -> SandboxProcess:
        """Start a shell command in the workdir."""
        ...


class LocalProcess(SandboxProcess):
    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process

    async def output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            yield chunk.decode("utf-8", errors="replace")

    async def wait(self) -> int:
        return await self._process.wait()


class LocalSandbox(Sandbox):
    """Sandbox backed by a local directory and shell subprocesses."""

    def __init__(self, root_dir: Optional[str] = None, workdir: str = DEFAULT_WORKDIR):
        """
        Args:
            root_dir: Directory that holds the project files
            workdir: Virtual root the FileMap paths are expressed against
        """
        self.root_dir = Path(root_dir or settings.SANDBOX_WORKDIR).resolve()
        self._workdir = workdir.rstrip("/") or "/"

    @property
    def workdir(self) -> str:
        return self._workdir

    def _resolve(self, path: str) -> Path:
        target = (self.root_dir / path).resolve()
        if target != self.root_dir and self.root_dir not in target.parents:
            raise SandboxError(f"Path escapes sandbox: {path}")
        return target

    async def mkdir(self, path: str, recursive: bool = True) -> None:
        target = self._resolve(path)
        await asyncio.to_thread(target.mkdir, parents=recursive, exist_ok=recursive)

    async def read_file(self, path: str, encoding: Optional[str] = "utf-8") -> Union[str, bytes]:
        target = self._resolve(path)
        if encoding is None:
            return await asyncio.to_thread(target.read_bytes)
        return await asyncio.to_thread(target.read_text, encoding=encoding)

    async def write_file(
        self,
        path: str,
        content: Union[str, bytes],
        encoding: Optional[str] = "utf-8",
    ) -> None:
        target = self._resolve(path)
        if encoding is None:
            data = content if isinstance(content, bytes) else content.encode("utf-8")
            await asyncio.to_thread(target.write_bytes, data)
        else:
            await asyncio.to_thread(target.write_text, content, encoding=encoding)

    async def readdir(self, path: str = ".") -> List[str]:
        target = self._resolve(path)
        entries = await asyncio.to_thread(lambda: sorted(p.name for p in target.iterdir()))
        return entries

    async def spawn(self, command: str) -> SandboxProcess:
        self.root_dir.mkdir(parents=True, exist_ok=True)
        process = await asyncio.create_subprocess_shell(
            command,
            cwd=str(self.root_dir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        return LocalProcess(process)


# =============================================================================
# Population
# =============================================================================

def normalize_sandbox_path(path: str, workdir: str) -> str:
    """Strip the sandbox root prefix and any leading slashes from a FileMap key."""
    if workdir and workdir != "/" and path.startswith(workdir):
        path = path[len(workdir):]
    return path.lstrip("/")


def _encode_for_write(dirent: Dirent):
    """Return ``(content, encoding)``; binary entries carry base64 text."""
    if dirent.is_binary:
        return base64.b64decode(dirent.content or ""), None
    return dirent.content or "", "utf-8"


async def populate_sandbox(
    sandbox: Sandbox,
    files: FileMap,
    manifest_file: Optional[str] = None,
    settle_delay: Optional[float] = None,
) -> int:
    """
    Materialize a FileMap inside the sandbox.

    Folders are created first, then every file after its own parent
    directory. A failing entry is logged and skipped.

    Returns:
        Number of files written
    """
    manifest_file = manifest_file or settings.SANDBOX_MANIFEST_FILE
    if settle_delay is None:
        settle_delay = settings.SANDBOX_SETTLE_DELAY_SECONDS

    folders = []
    entries = []
    for path, dirent in files.items():
        if dirent is None:
            continue
        if dirent.is_folder:
            folders.append(path)
        elif dirent.is_file:
            entries.append((path, dirent))

    logger.info(f"Restoring {len(entries)} files and {len(folders)} folders to sandbox")

    for path in folders:
        try:
            relative = normalize_sandbox_path(path, sandbox.workdir)
            if relative:
                await sandbox.mkdir(relative, recursive=True)
                logger.debug(f"  mkdir {relative}")
        except Exception as e:
            logger.error(f"Failed to create folder {path}: {e}")

    written = 0
    for path, dirent in entries:
        try:
            relative = normalize_sandbox_path(path, sandbox.workdir)
            if not relative:
                continue
            parent = relative.rsplit("/", 1)[0] if "/" in relative else ""
            if parent:
                await sandbox.mkdir(parent, recursive=True)
            content, encoding = _encode_for_write(dirent)
            await sandbox.write_file(relative, content, encoding=encoding)
            written += 1
            logger.debug(f"  write {relative}")
        except Exception as e:
            logger.error(f"Failed to write file {path}: {e}")

    logger.info(f"Wrote {written}/{len(entries)} files to sandbox")

    if settle_delay:
        await asyncio.sleep(settle_delay)

    try:
        root_entries = await sandbox.readdir(".")
        if manifest_file in root_entries:
            logger.info(f"{manifest_file} verified in sandbox")
        else:
            logger.warning(f"{manifest_file} not found in sandbox root")
    except Exception as e:
        logger.error(f"Failed to verify sandbox files: {e}")

    return written


# =============================================================================
# Auto-start
# =============================================================================

async def _pump_output(process: SandboxProcess, label: str) -> None:
    async for chunk in process.output():
        logger.info(f"[{label}] {chunk.rstrip()}")


async def _monitor_start(process: SandboxProcess) -> int:
    _, exit_code = await asyncio.gather(_pump_output(process, "start"), process.wait())
    if exit_code != 0:
        logger.error(f"Start command exited with code: {exit_code}")
    return exit_code


async def auto_start(
    sandbox: Sandbox,
    files: FileMap,
    manifest_file: Optional[str] = None,
    detect_commands: Callable[[list], ProjectCommands] = detect_project_commands,
) -> Optional[asyncio.Task]:
    """
    Install and start a restored project.

    The setup command runs to completion; a non-zero exit is logged and the
    start step still runs. The start command keeps running in the background.

    Returns:
        The task monitoring the start process, or None if nothing was started
    """
    manifest_file = manifest_file or settings.SANDBOX_MANIFEST_FILE
    try:
        commands = detect_commands(file_contents(files))
        if commands.empty:
            logger.info("No setup or start commands detected, skipping auto-start")
            return None

        try:
            await sandbox.read_file(manifest_file, encoding="utf-8")
        except Exception:
            logger.error(f"{manifest_file} not found in sandbox, skipping auto-start")
            return None

        if commands.setup_command:
            logger.info(f"Running setup: {commands.setup_command}")
            try:
                process = await sandbox.spawn(commands.setup_command)
                _, exit_code = await asyncio.gather(
                    _pump_output(process, "setup"), process.wait()
                )
                if exit_code != 0:
                    logger.error(f"Setup command failed with exit code: {exit_code}")
                else:
                    logger.info("Setup completed successfully")
            except Exception as e:
                logger.error(f"Setup command error: {e}")

        if commands.start_command:
            logger.info(f"Starting application: {commands.start_command}")
            try:
                process = await sandbox.spawn(commands.start_command)
                monitor = run_in_background(_monitor_start(process))
                logger.info("Application start initiated")
                return monitor
            except Exception as e:
                logger.error(f"Start command error: {e}")
    except Exception as e:
        logger.error(f"Error auto-starting application: {e}")

    return None
