"""
Tests for sandbox population and auto-start.
"""
import asyncio
import base64
import logging

import pytest

from projectsync.client.sandbox import (
    LocalSandbox,
    auto_start,
    normalize_sandbox_path,
    populate_sandbox,
)
from projectsync.client.types import Dirent
from projectsync.core.exceptions import SandboxError


class TestNormalizeSandboxPath:
    def test_strips_workdir_prefix(self):
        assert normalize_sandbox_path("/home/project/src/a.js", "/home/project") == "src/a.js"

    def test_strips_leading_slashes(self):
        assert normalize_sandbox_path("//src/a.js", "/home/project") == "src/a.js"

    def test_relative_path_unchanged(self):
        assert normalize_sandbox_path("src/a.js", "/home/project") == "src/a.js"

    def test_workdir_itself_is_empty(self):
        assert normalize_sandbox_path("/home/project", "/home/project") == ""


class TestPopulateSandbox:
    """Tests for materializing a FileMap."""

    @pytest.mark.asyncio
    async def test_folders_before_files(self, sandbox):
        """Test all folder entries are created before any file is written."""
        files = {
            "/home/project/src/index.js": Dirent("file", "x"),
            "/home/project/assets": Dirent("folder"),
            "/home/project/package.json": Dirent("file", "{}"),
        }
        written = await populate_sandbox(sandbox, files, settle_delay=0)

        assert written == 2
        assert sandbox.operations == [
            ("mkdir", "assets"),
            ("mkdir", "src"),
            ("write", "src/index.js"),
            ("write", "package.json"),
        ]
        assert sandbox.files["src/index.js"] == "x"
        assert sandbox.files["package.json"] == "{}"

    @pytest.mark.asyncio
    async def test_parent_created_before_each_file(self, sandbox):
        """Test nested files get their parent directory on demand."""
        await populate_sandbox(
            sandbox, {"/home/project/a/b/c.txt": Dirent("file", "deep")}, settle_delay=0
        )
        assert sandbox.operations == [("mkdir", "a/b"), ("write", "a/b/c.txt")]

    @pytest.mark.asyncio
    async def test_binary_files_decoded(self, sandbox):
        """Test binary entries are written as bytes."""
        payload = b"\x89PNG\r\n"
        files = {
            "/home/project/logo.png": Dirent(
                "file", base64.b64encode(payload).decode("ascii"), is_binary=True
            )
        }
        await populate_sandbox(sandbox, files, settle_delay=0)
        assert sandbox.files["logo.png"] == payload

    @pytest.mark.asyncio
    async def test_failing_entry_is_skipped(self, sandbox):
        """Test one bad path does not abort the batch."""
        sandbox.fail_paths.add("bad.txt")
        files = {
            "/home/project/bad.txt": Dirent("file", "x"),
            "/home/project/good.txt": Dirent("file", "y"),
        }
        written = await populate_sandbox(sandbox, files, settle_delay=0)
        assert written == 1
        assert "good.txt" in sandbox.files

    @pytest.mark.asyncio
    async def test_missing_manifest_only_warns(self, sandbox, caplog):
        """Test an absent manifest is logged, not raised."""
        with caplog.at_level(logging.WARNING):
            await populate_sandbox(
                sandbox, {"/home/project/a.txt": Dirent("file", "x")}, settle_delay=0
            )
        assert "package.json not found" in caplog.text


class TestAutoStart:
    """Tests for the setup/start sub-algorithm."""

    @pytest.mark.asyncio
    async def test_runs_setup_then_start(self, sandbox):
        files = {"/home/project/package.json": Dirent("file", '{"scripts": {"dev": "vite"}}')}
        await populate_sandbox(sandbox, files, settle_delay=0)

        monitor = await auto_start(sandbox, files)
        assert sandbox.spawned == ["npm install", "npm run dev"]
        assert await monitor == 0

    @pytest.mark.asyncio
    async def test_setup_failure_still_starts(self, sandbox):
        files = {"/home/project/package.json": Dirent("file", '{"scripts": {"dev": "vite"}}')}
        await populate_sandbox(sandbox, files, settle_delay=0)
        sandbox.exit_codes["npm install"] = 1

        monitor = await auto_start(sandbox, files)
        assert sandbox.spawned == ["npm install", "npm run dev"]
        await monitor

    @pytest.mark.asyncio
    async def test_missing_manifest_skips(self, sandbox):
        """Test auto-start aborts when the manifest is not in the sandbox."""
        files = {"/home/project/package.json": Dirent("file", '{"scripts": {"dev": "vite"}}')}
        assert await auto_start(sandbox, files) is None
        assert sandbox.spawned == []

    @pytest.mark.asyncio
    async def test_no_commands_skips(self, sandbox):
        assert await auto_start(sandbox, {"/home/project/a.txt": Dirent("file", "x")}) is None
        assert sandbox.spawned == []


class TestLocalSandbox:
    """Tests for the directory-backed sandbox."""

    @pytest.mark.asyncio
    async def test_write_and_read(self, tmp_path):
        box = LocalSandbox(str(tmp_path))
        await box.mkdir("src")
        await box.write_file("src/a.txt", "hello")
        await box.write_file("b.bin", b"\x00\x01", encoding=None)

        assert await box.read_file("src/a.txt") == "hello"
        assert await box.read_file("b.bin", encoding=None) == b"\x00\x01"
        assert await box.readdir(".") == ["b.bin", "src"]

    @pytest.mark.asyncio
    async def test_path_escape_rejected(self, tmp_path):
        box = LocalSandbox(str(tmp_path / "root"))
        with pytest.raises(SandboxError):
            await box.write_file("../outside.txt", "x")

    @pytest.mark.asyncio
    async def test_spawn_collects_output_and_exit(self, tmp_path):
        box = LocalSandbox(str(tmp_path))
        process = await box.spawn("echo hi && exit 3")
        chunks = [chunk async for chunk in process.output()]
        assert "hi" in "".join(chunks)
        assert await asyncio.wait_for(process.wait(), timeout=10) == 3
