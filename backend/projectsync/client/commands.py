"""
Project command detection.

Inspects file contents for a recognizable manifest and derives the shell
commands that install and start the project inside the sandbox.
"""
import json
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, Union

from projectsync.client.types import Dirent

logger = logging.getLogger(__name__)

PREFERRED_SCRIPTS = ("dev", "start", "preview")
STATIC_START_COMMAND = "npx --yes serve"


@dataclass(frozen=True)
class ProjectCommands:
    type: str = ""
    setup_command: Optional[str] = None
    start_command: Optional[str] = None
    followup_message: str = ""

    @property
    def empty(self) -> bool:
        return not self.setup_command and not self.start_command


FileContents = Iterable[Tuple[str, str]]


def file_contents(files: Mapping[str, Optional[Union[Dirent, dict]]]) -> list:
    """Flatten a FileMap into ``(path, content)`` pairs for file entries only."""
    pairs = []
    for path, dirent in files.items():
        if dirent is None:
            continue
        if isinstance(dirent, dict):
            dirent = Dirent.from_dict(dirent)
        if dirent.is_file:
            pairs.append((path, dirent.content or ""))
    return pairs


def detect_project_commands(files: FileContents) -> ProjectCommands:
    """
    Detect setup/start commands from file contents.

    A ``package.json`` with a dev/start/preview script yields ``npm install``
    plus ``npm run <script>``; a bare ``index.html`` yields a static server.
    """
    files = list(files)

    manifest = next((content for path, content in files if path.endswith("package.json")), None)
    if manifest is not None:
        try:
            package_json = json.loads(manifest)
        except ValueError as e:
            logger.error(f"Error parsing package.json: {e}")
            return ProjectCommands()

        scripts = package_json.get("scripts") if isinstance(package_json, dict) else None
        if not isinstance(scripts, dict):
            scripts = {}
        available = next((cmd for cmd in PREFERRED_SCRIPTS if scripts.get(cmd)), None)
        if available:
            return ProjectCommands(
                type="Node.js",
                setup_command="npm install",
                start_command=f"npm run {available}",
                followup_message=(
                    f'Found "{available}" script in package.json. '
                    f'Running "npm run {available}" after installation.'
                ),
            )
        return ProjectCommands(
            type="Node.js",
            setup_command="npm install",
            followup_message=(
                "Would you like me to inspect package.json to determine the "
                "available scripts for running this project?"
            ),
        )

    if any(path.endswith("index.html") for path, _ in files):
        return ProjectCommands(type="Static", start_command=STATIC_START_COMMAND)

    return ProjectCommands()


def create_command_actions_string(commands: ProjectCommands) -> str:
    """Render the shell/start actions embedded in a restore artifact."""
    if commands.empty:
        return ""

    actions = ""
    if commands.setup_command:
        actions += f'\n<boltAction type="shell">{commands.setup_command}</boltAction>'
    if commands.start_command:
        actions += f'\n<boltAction type="start">{commands.start_command}</boltAction>\n'
    return actions
