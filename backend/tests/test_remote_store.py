"""
Tests for the remote project store client.
"""
import httpx
import pytest
from fastapi.testclient import TestClient

from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.tasks import drain_background_tasks
from projectsync.client.types import Dirent, Message, WorkbenchState
from projectsync.core.exceptions import RemoteStoreError
from projectsync.main import app
from conftest import TEST_USER_ID, make_token


def _store_with_handler(handler) -> RemoteProjectStore:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RemoteProjectStore(base_url="http://test", token="tok", client=http)


@pytest.fixture
def api_store(client: TestClient):
    """Remote store talking to the app in-process, sharing the test database."""
    http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return RemoteProjectStore(base_url="http://test", token=make_token(TEST_USER_ID), client=http)


class TestTransport:
    """Tests for request construction and error mapping."""

    @pytest.mark.asyncio
    async def test_bearer_token_and_prefix(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"projects": []})

        store = _store_with_handler(handler)
        assert await store.list_projects() == []
        assert seen == {"url": "http://test/api/projects", "auth": "Bearer tok"}

    @pytest.mark.asyncio
    async def test_load_missing_project_returns_none(self):
        store = _store_with_handler(
            lambda request: httpx.Response(404, json={"error": "Project not found"})
        )
        assert await store.load_project("nope") is None

    @pytest.mark.asyncio
    async def test_error_carries_status_and_message(self):
        store = _store_with_handler(
            lambda request: httpx.Response(500, json={"error": "Failed to load project"})
        )
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.load_project("p1")
        assert exc_info.value.status_code == 500
        assert "Failed to load project" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_network_failure(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        store = _store_with_handler(handler)
        with pytest.raises(RemoteStoreError):
            await store.list_projects()

    @pytest.mark.asyncio
    async def test_send_beacon_queues_request(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content)
            return httpx.Response(200, json={"files": [], "count": 0})

        store = _store_with_handler(handler)
        assert store.send_beacon("/projects/p1/files", {"files": {}}) is True
        await drain_background_tasks()
        assert len(bodies) == 1

    def test_send_beacon_without_loop(self):
        store = _store_with_handler(lambda request: httpx.Response(200, json={}))
        assert store.send_beacon("/projects/p1/files", {"files": {}}) is False


class TestAgainstApi:
    """Round trips through the real routes."""

    @pytest.mark.asyncio
    async def test_ensure_project_and_load(self, api_store: RemoteProjectStore):
        project = await api_store.ensure_project("todo", title="Todo")
        pid = str(project["id"])

        await api_store.save_messages(
            pid,
            [
                Message(id="m1", role="user", content="build a todo app"),
                Message(id="m2", role="assistant", content="ok", tool_invocations=[{"n": 1}]),
            ],
        )
        await api_store.save_files(
            pid,
            {
                "/home/project/index.js": Dirent("file", "console.log(1)"),
                "/home/project/src": Dirent("folder"),
            },
        )
        await api_store.save_workbench(
            pid, WorkbenchState(selected_file="/home/project/index.js", show_workbench=True)
        )

        loaded = await api_store.load_project("todo")
        assert loaded.id == pid
        assert loaded.title == "Todo"
        assert [m.id for m in loaded.messages] == ["m1", "m2"]
        assert loaded.messages[1].tool_invocations == [{"n": 1}]
        assert loaded.files == {"/home/project/index.js": Dirent("file", "console.log(1)")}
        assert loaded.workbench.selected_file == "/home/project/index.js"
        assert loaded.workbench.show_workbench is True
        await api_store.aclose()

    @pytest.mark.asyncio
    async def test_ensure_project_is_idempotent(self, api_store: RemoteProjectStore):
        first = await api_store.ensure_project("todo")
        second = await api_store.ensure_project("todo", title="Other")
        assert first["id"] == second["id"]
        assert len(await api_store.list_projects()) == 1

    @pytest.mark.asyncio
    async def test_delete_project(self, api_store: RemoteProjectStore):
        project = await api_store.ensure_project("todo")
        assert await api_store.delete_project(str(project["id"])) is True
        assert await api_store.load_project("todo") is None

    @pytest.mark.asyncio
    async def test_missing_workbench(self, api_store: RemoteProjectStore):
        project = await api_store.ensure_project("todo")
        assert await api_store.get_workbench(str(project["id"])) is None

    @pytest.mark.asyncio
    async def test_unauthenticated(self, client: TestClient):
        http = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
        store = RemoteProjectStore(base_url="http://test", client=http)
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.list_projects()
        assert exc_info.value.status_code == 401


class TestMalformedResponses:
    """Unexpected bodies surface as RemoteStoreError, never as parser errors."""

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        store = _store_with_handler(
            lambda request: httpx.Response(200, text="<html>portal</html>")
        )
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.save_files("p1", {})
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_non_object_success_body(self):
        store = _store_with_handler(lambda request: httpx.Response(200, json=["a", "b"]))
        with pytest.raises(RemoteStoreError):
            await store.list_projects()

    @pytest.mark.asyncio
    async def test_non_object_error_body(self):
        store = _store_with_handler(lambda request: httpx.Response(502, json=["bad gateway"]))
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.list_projects()
        assert exc_info.value.status_code == 502
        assert str(exc_info.value) == "Bad Gateway"

    @pytest.mark.asyncio
    async def test_html_error_body(self):
        store = _store_with_handler(
            lambda request: httpx.Response(503, text="<html>maintenance</html>")
        )
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.load_project("p1")
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_missing_project_key(self):
        store = _store_with_handler(lambda request: httpx.Response(200, json={"ok": True}))
        with pytest.raises(RemoteStoreError):
            await store.ensure_project("todo")

    @pytest.mark.asyncio
    async def test_malformed_project_load(self):
        store = _store_with_handler(
            lambda request: httpx.Response(200, json={"project": {"title": "no ids"}})
        )
        with pytest.raises(RemoteStoreError):
            await store.load_project("p1")
