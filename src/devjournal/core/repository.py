"""Git working copy of the content repository.

Commands run as asyncio subprocesses with the deploy key supplied through
``GIT_SSH_COMMAND`` in the child's environment only. Callers must serialize
access to one working copy; see ``devjournal.core.sync``.
"""

import asyncio
import logging
import os
import shlex
import shutil
from pathlib import Path

from devjournal.core.errors import TransportError

logger = logging.getLogger(__name__)


def check_git_available(git_binary: str = "git") -> str:
    """Return the resolved git executable or raise TransportError."""
    resolved = shutil.which(git_binary)
    if resolved is None:
        raise TransportError([git_binary], f"{git_binary} command not found, please install git")
    return resolved


class GitRepository:
    """Clone and pull one remote into one local directory."""

    def __init__(
        self,
        repo_url: str,
        path: Path,
        ssh_key_path: Path | None = None,
        strict_host_key_checking: bool = True,
        known_hosts_path: Path | None = None,
        git_binary: str = "git",
    ):
        self.repo_url = repo_url
        self.path = Path(path)
        self.ssh_key_path = ssh_key_path
        self.strict_host_key_checking = strict_host_key_checking
        self.known_hosts_path = known_hosts_path
        self.git_binary = git_binary

    def exists(self) -> bool:
        """Whether the working copy is present."""
        return self.path.exists()

    def ssh_command(self) -> str | None:
        """Build the ssh invocation git should use, or None without a key."""
        if self.ssh_key_path is None:
            return None
        parts = [
            "ssh",
            "-i",
            str(self.ssh_key_path),
            "-o",
            "IdentitiesOnly=yes",
            "-o",
            f"StrictHostKeyChecking={'yes' if self.strict_host_key_checking else 'no'}",
        ]
        if self.known_hosts_path is not None:
            parts += ["-o", f"UserKnownHostsFile={self.known_hosts_path}"]
        return shlex.join(parts)

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        ssh_command = self.ssh_command()
        if ssh_command is not None:
            env["GIT_SSH_COMMAND"] = ssh_command
        return env

    async def _run(self, *args: str, cwd: Path | None = None) -> str:
        """Run git and return its combined output. No timeout is applied."""
        command = [self.git_binary, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd is not None else None,
                env=self._env(),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise TransportError(command, str(exc)) from exc

        stdout, _ = await process.communicate()
        output = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            raise TransportError(command, output, process.returncode)
        return output

    async def clone(self) -> None:
        """Clone the remote. The working copy must not exist yet."""
        if self.exists():
            raise TransportError(
                [self.git_binary, "clone"], f"{self.path} already exists"
            )
        logger.info("Cloning repository %s into %s...", self.repo_url, self.path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        await self._run("clone", self.repo_url, str(self.path))

    async def pull(self) -> None:
        """Pull the latest changes into the existing working copy."""
        logger.info("Pulling latest changes from repository...")
        if not self.exists():
            raise TransportError(
                [self.git_binary, "pull"], f"working copy {self.path} does not exist"
            )
        await self._run("pull", cwd=self.path)

    async def ensure(self) -> bool:
        """Clone when absent, otherwise pull. Returns True if a clone happened."""
        if self.exists():
            logger.info("Content directory already exists. Skipping initial clone.")
            await self.pull()
            return False
        await self.clone()
        return True
