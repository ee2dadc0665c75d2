"""Tests for the git working copy wrapper.

Uses local repositories created with the git binary; no network access.
"""

import os
import shutil
import subprocess
from pathlib import Path

import pytest

from devjournal.core.errors import TransportError
from devjournal.core.repository import GitRepository, check_git_available

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return result.stdout


def commit_file(repo: Path, rel_path: str, content: str) -> None:
    path = repo / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    git(repo, "add", rel_path)
    git(repo, "commit", "-m", f"Add {rel_path}")


@pytest.fixture
def upstream(tmp_path):
    """A local repository standing in for the remote."""
    repo = tmp_path / "upstream"
    repo.mkdir()
    git(repo, "init")
    commit_file(repo, "home.md", "# Home\n")
    return repo


# ============================================================
# SSH command
# ============================================================


class TestSshCommand:
    def test_strict_by_default(self, tmp_path):
        repo = GitRepository("git@example.com:a/b.git", tmp_path / "c", Path("/keys/deploy"))
        command = repo.ssh_command()
        assert command.startswith("ssh -i /keys/deploy")
        assert "IdentitiesOnly=yes" in command
        assert "StrictHostKeyChecking=yes" in command

    def test_strict_can_be_disabled(self, tmp_path):
        repo = GitRepository(
            "git@example.com:a/b.git",
            tmp_path / "c",
            Path("/keys/deploy"),
            strict_host_key_checking=False,
        )
        assert "StrictHostKeyChecking=no" in repo.ssh_command()

    def test_known_hosts_file(self, tmp_path):
        repo = GitRepository(
            "git@example.com:a/b.git",
            tmp_path / "c",
            Path("/keys/deploy"),
            known_hosts_path=Path("/etc/journal/known_hosts"),
        )
        assert "UserKnownHostsFile=/etc/journal/known_hosts" in repo.ssh_command()

    def test_key_path_with_spaces_is_quoted(self, tmp_path):
        repo = GitRepository("url", tmp_path / "c", Path("/my keys/deploy"))
        assert "'/my keys/deploy'" in repo.ssh_command()

    def test_no_key_no_command(self, tmp_path):
        repo = GitRepository("url", tmp_path / "c")
        assert repo.ssh_command() is None
        assert repo._env().get("GIT_SSH_COMMAND") == os.environ.get("GIT_SSH_COMMAND")

    def test_env_scoped_to_child(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GIT_SSH_COMMAND", raising=False)
        repo = GitRepository("url", tmp_path / "c", Path("/keys/deploy"))
        env = repo._env()
        assert env["GIT_SSH_COMMAND"] == repo.ssh_command()
        assert "GIT_SSH_COMMAND" not in os.environ


# ============================================================
# Clone / pull against a local remote
# ============================================================


@requires_git
class TestGitOperations:
    @pytest.mark.asyncio
    async def test_clone(self, upstream, tmp_path):
        repo = GitRepository(str(upstream), tmp_path / "content")
        assert not repo.exists()
        await repo.clone()
        assert (tmp_path / "content" / "home.md").read_text() == "# Home\n"

    @pytest.mark.asyncio
    async def test_clone_existing_raises(self, upstream, tmp_path):
        (tmp_path / "content").mkdir()
        repo = GitRepository(str(upstream), tmp_path / "content")
        with pytest.raises(TransportError):
            await repo.clone()

    @pytest.mark.asyncio
    async def test_pull_fetches_new_commits(self, upstream, tmp_path):
        repo = GitRepository(str(upstream), tmp_path / "content")
        await repo.clone()
        commit_file(upstream, "blog/post.md", "# Post\n")

        await repo.pull()

        assert (tmp_path / "content" / "blog" / "post.md").exists()

    @pytest.mark.asyncio
    async def test_ensure_clones_then_pulls(self, upstream, tmp_path):
        repo = GitRepository(str(upstream), tmp_path / "content")
        assert await repo.ensure() is True
        commit_file(upstream, "about.md", "# About\n")
        assert await repo.ensure() is False
        assert (tmp_path / "content" / "about.md").exists()

    @pytest.mark.asyncio
    async def test_clone_failure_carries_output(self, tmp_path):
        repo = GitRepository(str(tmp_path / "no-such-remote"), tmp_path / "content")
        with pytest.raises(TransportError) as exc_info:
            await repo.clone()
        assert exc_info.value.returncode != 0
        assert exc_info.value.command[:2] == ["git", "clone"]
        assert exc_info.value.output

    @pytest.mark.asyncio
    async def test_pull_without_working_copy_raises(self, upstream, tmp_path):
        repo = GitRepository(str(upstream), tmp_path / "content")
        with pytest.raises(TransportError):
            await repo.pull()


class TestGitBinary:
    @pytest.mark.asyncio
    async def test_missing_binary_raises_transport_error(self, tmp_path):
        repo = GitRepository("url", tmp_path / "content", git_binary="definitely-not-git")
        with pytest.raises(TransportError) as exc_info:
            await repo.clone()
        assert exc_info.value.returncode is None

    def test_check_git_available_missing(self):
        with pytest.raises(TransportError, match="not found"):
            check_git_available("definitely-not-git")

    @requires_git
    def test_check_git_available(self):
        assert check_git_available("git").endswith("git")
