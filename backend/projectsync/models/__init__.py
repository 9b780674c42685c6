from projectsync.db.base import Base  # noqa: F401

from .user_profile import UserProfile  # noqa: F401
from .project import Project  # noqa: F401
from .chat_message import ChatMessage  # noqa: F401
from .project_file import ProjectFile  # noqa: F401
from .workbench_state import WorkbenchState  # noqa: F401
