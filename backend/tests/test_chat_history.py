"""
Tests for persisting the live conversation.
"""
import json

import httpx
import pytest

from projectsync.client.chat_history import ChatHistory, extract_chat_summary
from projectsync.client.local_store import LocalHistoryStore
from projectsync.client.remote_store import RemoteProjectStore
from projectsync.client.state import Artifact, ChatView, WorkbenchStore
from projectsync.client.sync_agents import SyncAgentRegistry
from projectsync.client.types import Dirent, Message
from projectsync.core.exceptions import RemoteStoreError


class FakeRemote:
    def __init__(self):
        self.projects = []
        self.saved_messages = []
        self.fail = False

    async def ensure_project(self, url_id, title=None, description=None, metadata=None):
        if self.fail:
            raise RemoteStoreError("offline")
        self.projects.append((url_id, title, description))
        return {"id": f"proj-{url_id}", "url_id": url_id}

    async def save_messages(self, project_id, messages):
        self.saved_messages.append((project_id, [m.id for m in messages]))
        return len(messages)

    async def save_files(self, project_id, files):
        return len(files)

    async def save_workbench(self, project_id, state):
        return None


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def workbench() -> WorkbenchStore:
    return WorkbenchStore(files={"/home/project/a.txt": Dirent("file", "a")})


@pytest.fixture
def history(local_store, remote, workbench, notifier, navigator):
    agents = SyncAgentRegistry(remote, interval=3600)
    chat_history = ChatHistory(local_store, remote, agents, ChatView(), workbench, notifier, navigator)
    yield chat_history
    agents.stop_all()


def test_extract_chat_summary():
    message = Message(
        id="a",
        role="assistant",
        content="",
        annotations=["no-store", {"type": "chatSummary", "summary": "built it", "chatId": "a"}],
    )
    assert extract_chat_summary(message) == "built it"
    assert extract_chat_summary(Message(id="u", role="user", content="")) is None


class TestStoreMessageHistory:
    @pytest.mark.asyncio
    async def test_new_chat_gets_next_id(
        self, history: ChatHistory, local_store: LocalHistoryStore, navigator
    ):
        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert history.view.chat_id == "1"
        assert navigator.history == ["/chat/1"]
        stored = await local_store.get_messages_by_id("1")
        assert [m.id for m in stored.messages] == ["m1"]

    @pytest.mark.asyncio
    async def test_snapshot_taken_at_last_message(
        self, history: ChatHistory, local_store: LocalHistoryStore
    ):
        await history.store_message_history(
            [
                Message(id="m1", role="user", content="hi"),
                Message(
                    id="m2",
                    role="assistant",
                    content="done",
                    annotations=[{"type": "chatSummary", "summary": "greeting"}],
                ),
            ]
        )
        snapshot = await local_store.get_snapshot("1")
        assert snapshot.chat_index == "m2"
        assert snapshot.summary == "greeting"
        assert snapshot.files == {"/home/project/a.txt": Dirent("file", "a")}

    @pytest.mark.asyncio
    async def test_no_store_messages_are_dropped(
        self, history: ChatHistory, local_store: LocalHistoryStore
    ):
        await history.store_message_history(
            [
                Message(id="m1", role="user", content="hi"),
                Message(id="m1-restore-request", role="user", content="", annotations=["no-store", "hidden"]),
            ]
        )
        stored = await local_store.get_messages_by_id("1")
        assert [m.id for m in stored.messages] == ["m1"]

    @pytest.mark.asyncio
    async def test_only_no_store_messages_writes_nothing(
        self, history: ChatHistory, local_store: LocalHistoryStore
    ):
        await history.store_message_history(
            [Message(id="x", role="user", content="", annotations=["no-store"])]
        )
        assert await local_store.get_all() == []

    @pytest.mark.asyncio
    async def test_artifact_seeds_url_id_and_description(
        self, history: ChatHistory, local_store: LocalHistoryStore, workbench, navigator
    ):
        await local_store.set_messages("5", [Message(id="z", role="user", content="")], "todo-app")
        workbench.first_artifact = Artifact(id="todo-app", title="Todo App")

        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert history.view.url_id == "todo-app-2"
        assert history.view.description == "Todo App"
        assert navigator.history == ["/chat/todo-app-2"]
        stored = await local_store.get_messages_by_url_id("todo-app-2")
        assert stored.id == "6"
        assert stored.description == "Todo App"

    @pytest.mark.asyncio
    async def test_archived_prefix_is_kept(
        self, history: ChatHistory, local_store: LocalHistoryStore
    ):
        history.view.chat_id = "3"
        history.view.archived_messages = [Message(id="old", role="user", content="")]
        history.view.initial_messages = [Message(id="m1", role="user", content="")]

        await history.store_message_history([Message(id="m2", role="user", content="")])

        stored = await local_store.get_messages_by_id("3")
        assert [m.id for m in stored.messages] == ["old", "m2"]

    @pytest.mark.asyncio
    async def test_remote_sync_starts_agents(self, history: ChatHistory, remote: FakeRemote):
        history.view.description = "Todo"
        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert remote.projects == [("1", "Todo", "Chat project")]
        assert remote.saved_messages == [("proj-1", ["m1"])]
        assert history.project_id == "proj-1"
        assert history.agents.get("proj-1").files.running

    @pytest.mark.asyncio
    async def test_remote_failure_is_not_raised(
        self, history: ChatHistory, remote: FakeRemote, local_store: LocalHistoryStore, notifier
    ):
        remote.fail = True
        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert await local_store.get_messages_by_id("1") is not None
        assert notifier.errors == []
        assert history.project_id is None


    @pytest.mark.asyncio
    async def test_junk_remote_response_does_not_fail_save(
        self, local_store: LocalHistoryStore, workbench, notifier, navigator
    ):
        http = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="<html>portal</html>"))
        )
        remote = RemoteProjectStore(base_url="http://test", token="tok", client=http)
        agents = SyncAgentRegistry(remote, interval=3600)
        history = ChatHistory(local_store, remote, agents, ChatView(), workbench, notifier, navigator)

        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert [m.id for m in (await local_store.get_messages_by_id("1")).messages] == ["m1"]
        assert history.project_id is None
        assert notifier.errors == []

    @pytest.mark.asyncio
    async def test_unexpected_remote_error_does_not_fail_save(
        self, history: ChatHistory, remote: FakeRemote, local_store: LocalHistoryStore, monkeypatch
    ):
        async def no_id(url_id, title=None, description=None, metadata=None):
            return {"url_id": url_id}

        monkeypatch.setattr(remote, "ensure_project", no_id)
        await history.store_message_history([Message(id="m1", role="user", content="hi")])

        assert await local_store.get_messages_by_id("1") is not None
        assert history.project_id is None

class TestChatOperations:
    @pytest.mark.asyncio
    async def test_update_metadata(self, history: ChatHistory, local_store: LocalHistoryStore):
        await history.store_message_history([Message(id="m1", role="user", content="hi")])
        history.view.initial_messages = [Message(id="m1", role="user", content="hi")]

        await history.update_chat_metadata({"gitUrl": "https://example.com/r.git"})

        stored = await local_store.get_messages_by_id("1")
        assert stored.metadata == {"gitUrl": "https://example.com/r.git"}
        assert history.view.metadata == stored.metadata

    @pytest.mark.asyncio
    async def test_duplicate_current_chat(
        self, history: ChatHistory, local_store: LocalHistoryStore, notifier, navigator
    ):
        await local_store.set_messages("1", [Message(id="m1", role="user", content="")], "app", "App")
        history.view.chat_id = "1"

        new_url_id = await history.duplicate_current_chat()

        assert new_url_id == "2"
        assert navigator.history == ["/chat/2"]
        assert ("success", "Chat duplicated successfully") in notifier.messages

    @pytest.mark.asyncio
    async def test_duplicate_missing_chat(self, history: ChatHistory, notifier):
        history.view.chat_id = "404"
        assert await history.duplicate_current_chat() is None
        assert notifier.errors == ["Failed to duplicate chat"]

    @pytest.mark.asyncio
    async def test_import_chat(self, history: ChatHistory, local_store: LocalHistoryStore):
        url_id = await history.import_chat("Imported", [Message(id="m1", role="user", content="")])
        assert (await local_store.get_messages(url_id)).description == "Imported"

    @pytest.mark.asyncio
    async def test_export_chat(self, history: ChatHistory, local_store: LocalHistoryStore, tmp_path):
        await local_store.set_messages("1", [Message(id="m1", role="user", content="hi")], "app", "App")
        target = tmp_path / "export.json"

        data = await history.export_chat("app", str(target))

        assert data["description"] == "App"
        assert data["messages"] == [{"id": "m1", "role": "user", "content": "hi"}]
        assert "exportDate" in data
        assert json.loads(target.read_text()) == data

    @pytest.mark.asyncio
    async def test_export_unknown_chat(self, history: ChatHistory):
        assert await history.export_chat("nope") is None
