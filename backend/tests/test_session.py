"""
End-to-end tests: two client sessions sharing one server.
"""
import json
from typing import Generator

import httpx
import pytest
from sqlalchemy.orm import Session

from projectsync.client.session import ClientSession
from projectsync.client.tasks import drain_background_tasks
from projectsync.client.types import Dirent, Message
from projectsync.core.deps import get_db
from projectsync.main import app
from conftest import FakeSandbox, RecordingNavigator, RecordingNotifier, TEST_USER_ID, TestingSessionLocal, make_token


@pytest.fixture
def threaded_db(db: Session) -> Generator[None, None, None]:
    """One database session per request; background syncs hit the API concurrently."""

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()


def new_session() -> ClientSession:
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    session = ClientSession.create(
        token=make_token(TEST_USER_ID),
        base_url="http://test",
        local_store_url="sqlite:///:memory:",
        sandbox=FakeSandbox(),
        notifier=RecordingNotifier(),
        navigator=RecordingNavigator(),
        http_client=http,
    )
    session.restore_service.auto_start_delay = 0
    return session


@pytest.mark.asyncio
async def test_project_restores_on_another_device(threaded_db):
    """A chat saved on one device is rebuilt from the server on a device with no local history."""
    first = new_session()
    first.workbench.set_files(
        {
            "/home/project/index.html": Dirent("file", "<h1>hi</h1>"),
            "/home/project/assets": Dirent("folder"),
        }
    )
    first.workbench.selected_file = "/home/project/index.html"
    await first.history.store_message_history(
        [
            Message(id="m1", role="user", content="make a page"),
            Message(id="m2", role="assistant", content="done"),
        ]
    )
    await drain_background_tasks()
    await first.aclose()

    second = new_session()
    view = await second.coordinator.activate("1")

    assert view.ready is True
    assert [m.id for m in view.initial_messages] == ["m1", "m2"]
    assert second.workbench.files == {"/home/project/index.html": Dirent("file", "<h1>hi</h1>")}
    assert second.workbench.selected_file == "/home/project/index.html"
    assert second.sandbox.files["index.html"] == "<h1>hi</h1>"

    cached = await second.local_store.get_messages_by_id("1")
    assert [m.id for m in cached.messages] == ["m1", "m2"]
    await second.aclose()


@pytest.mark.asyncio
async def test_unload_queues_pending_changes(threaded_db):
    session = new_session()
    await session.history.store_message_history([Message(id="m1", role="user", content="hi")])
    await drain_background_tasks()

    session.workbench.set_files({"/home/project/package.json": Dirent("file", json.dumps({}))})
    session.unload()
    await drain_background_tasks()

    project = await session.remote.load_project("1")
    assert "/home/project/package.json" in project.files
    await session.aclose()
