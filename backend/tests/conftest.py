"""
Pytest configuration and fixtures for the test suite.
"""
import os
import pytest
from typing import Dict, Generator, List, Optional, Union
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Set test environment before importing app
os.environ["ENV"] = "development"
os.environ["AUTH_JWT_KEY"] = "test-secret-key-for-testing-purposes-only-32chars"
os.environ["AUTH_JWT_ALGORITHM"] = "HS256"

from projectsync.main import app
from projectsync.db.base import Base
from projectsync.core.deps import get_db
from projectsync.services.auth import create_access_token
from projectsync.client.local_store import LocalHistoryStore
from projectsync.client.notifications import Navigator, Notifier
from projectsync.client.sandbox import Sandbox, SandboxProcess
from projectsync.core.exceptions import SandboxError


# Use SQLite for testing
SQLALCHEMY_TEST_DATABASE_URL = os.getenv(
    "TEST_DATABASE_URL",
    "sqlite:///./test.db"
)

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in SQLALCHEMY_TEST_DATABASE_URL else {},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_USER_ID = "user_test_1"
OTHER_USER_ID = "user_other_2"


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db_with_session():
        """Return the test database session."""
        yield db

    app.dependency_overrides[get_db] = override_get_db_with_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(user_id: str) -> str:
    return create_access_token(data={"sub": user_id})


@pytest.fixture
def auth_headers() -> dict:
    """Create authentication headers for the test user."""
    return {"Authorization": f"Bearer {make_token(TEST_USER_ID)}"}


@pytest.fixture
def other_auth_headers() -> dict:
    """Create authentication headers for another user."""
    return {"Authorization": f"Bearer {make_token(OTHER_USER_ID)}"}


@pytest.fixture
def authenticated_client(client: TestClient, auth_headers: dict) -> TestClient:
    """Create an authenticated test client."""
    client.headers.update(auth_headers)
    return client


@pytest.fixture
def test_project(authenticated_client: TestClient) -> dict:
    """Create a project for the test user through the API."""
    response = authenticated_client.post(
        "/api/projects",
        json={"intent": "create", "url_id": "my-app", "title": "My App"},
    )
    assert response.status_code == 200
    return response.json()["project"]


@pytest.fixture
def other_user_project(client: TestClient, other_auth_headers: dict) -> dict:
    """Create a project owned by another user."""
    response = client.post(
        "/api/projects",
        json={"intent": "create", "url_id": "their-app", "title": "Their App"},
        headers=other_auth_headers,
    )
    assert response.status_code == 200
    return response.json()["project"]


# =============================================================================
# Client core fakes
# =============================================================================

@pytest.fixture
def local_store() -> Generator[LocalHistoryStore, None, None]:
    """In-memory local history store."""
    store = LocalHistoryStore("sqlite:///:memory:")
    try:
        yield store
    finally:
        store.close()


class FakeProcess(SandboxProcess):
    def __init__(self, exit_code: int = 0, output: Optional[List[str]] = None):
        self.exit_code = exit_code
        self.chunks = output or []

    async def output(self):
        for chunk in self.chunks:
            yield chunk

    async def wait(self) -> int:
        return self.exit_code


class FakeSandbox(Sandbox):
    """Sandbox keeping files in a dict and recording spawned commands."""

    def __init__(self, workdir: str = "/home/project"):
        self._workdir = workdir
        self.dirs = set()
        self.files: Dict[str, Union[str, bytes]] = {}
        self.operations: List[tuple] = []
        self.spawned: List[str] = []
        self.exit_codes: Dict[str, int] = {}
        self.fail_paths = set()

    @property
    def workdir(self) -> str:
        return self._workdir

    async def mkdir(self, path: str, recursive: bool = True) -> None:
        if path in self.fail_paths:
            raise SandboxError(f"cannot create {path}")
        self.operations.append(("mkdir", path))
        parts = path.split("/")
        for i in range(1, len(parts) + 1):
            self.dirs.add("/".join(parts[:i]))

    async def read_file(self, path: str, encoding: Optional[str] = "utf-8"):
        if path not in self.files:
            raise SandboxError(f"no such file: {path}")
        return self.files[path]

    async def write_file(self, path: str, content, encoding: Optional[str] = "utf-8") -> None:
        if path in self.fail_paths:
            raise SandboxError(f"cannot write {path}")
        parent = path.rsplit("/", 1)[0] if "/" in path else ""
        if parent and parent not in self.dirs:
            raise SandboxError(f"parent directory missing for {path}")
        self.operations.append(("write", path))
        self.files[path] = content

    async def readdir(self, path: str = ".") -> List[str]:
        names = {p.split("/", 1)[0] for p in list(self.files) + list(self.dirs)}
        return sorted(names)

    async def spawn(self, command: str) -> SandboxProcess:
        self.spawned.append(command)
        return FakeProcess(exit_code=self.exit_codes.get(command, 0), output=[f"$ {command}\n"])


@pytest.fixture
def sandbox() -> FakeSandbox:
    return FakeSandbox()


class RecordingNotifier(Notifier):
    def __init__(self):
        self.messages: List[tuple] = []

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    @property
    def errors(self) -> List[str]:
        return [m for level, m in self.messages if level == "error"]


class RecordingNavigator(Navigator):
    def __init__(self):
        self.history: List[str] = []

    def redirect_home(self) -> None:
        self.history.append("/")

    def open_chat(self, chat_ref: str, replace: bool = False) -> None:
        self.history.append(f"/chat/{chat_ref}")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def navigator() -> RecordingNavigator:
    return RecordingNavigator()
