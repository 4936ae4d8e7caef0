# src/config_repo/git_store.py — v1
"""Git-backed configuration repository (CONFIG_STORE_BACKEND=git, default).

Drives a local clone through the git CLI. The remote branch is the source
of truth: every read and write starts from a fresh fetch and a hard reset
to origin/<branch>, and a write only counts once the push is accepted.

Conflict detection is two-layered:
  - local: head after fetch differs from expected_revision
  - remote: push rejected as non-fast-forward (someone pushed in between)
Either way the clone is reset to the remote head before raising, so a
failed write never leaves a local commit behind.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
from datetime import datetime
from pathlib import Path

from shipflow.config_repo.base_store import BaseConfigStore
from shipflow.config_repo.models import ConfigCommit, ConfigSnapshot
from shipflow.core.errors import ConfigAuthError, ConfigWriteConflict, PipelineError
from shipflow.core.proc import SESSION_KWARGS, communicate_or_kill

logger = logging.getLogger(__name__)

_AUTH_PATTERNS = re.compile(
    r"authentication failed|permission denied|could not read username|"
    r"access denied|returned error: 403|returned error: 401|"
    r"invalid username or password|protected branch",
    re.IGNORECASE,
)
_REJECT_PATTERNS = re.compile(
    r"\[rejected\]|non-fast-forward|fetch first|failed to update ref|"
    r"cannot lock ref|stale info",
    re.IGNORECASE,
)
_FIELD_SEP = "\x1f"


class GitCommandError(PipelineError):
    """A git command failed for a reason other than auth or conflict."""


class GitConfigStore(BaseConfigStore):
    """Configuration store backed by a remote git repository.

    Args:
        url: Remote URL (https, ssh, or a local path to a bare repository).
        workdir: Directory for the local clone.
        branch: Branch holding the desired state.
        author: Commit author as "Name <email>".
        timeout_s: Budget per git command.
    """

    def __init__(
        self,
        url: str,
        workdir: Path | str,
        branch: str = "main",
        author: str = "shipflow <shipflow@localhost>",
        timeout_s: float = 120.0,
    ) -> None:
        self._url = url
        self._workdir = Path(workdir).expanduser()
        self._branch = branch
        self._author_name, self._author_email = _split_author(author)
        self._timeout_s = timeout_s
        self._lock = asyncio.Lock()

    async def read(self, file: str) -> ConfigSnapshot:
        async with self._lock:
            await self._sync()
            path = self._resolve(file)
            content = path.read_text(encoding="utf-8") if path.is_file() else None
            revision = await self._rev_parse("HEAD")
        return ConfigSnapshot(file=file, content=content, revision=revision)

    async def write(
        self,
        file: str,
        content: str,
        expected_revision: str | None,
        message: str,
    ) -> str:
        async with self._lock:
            await self._sync()
            head = await self._rev_parse("HEAD")
            if head != expected_revision:
                raise ConfigWriteConflict(file, expected_revision, head)

            path = self._resolve(file)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

            try:
                await self._git("add", "--", file)
                await self._git(
                    "-c", f"user.name={self._author_name}",
                    "-c", f"user.email={self._author_email}",
                    "commit", "--no-verify", "-m", message,
                )
                await self._git("push", "origin", f"HEAD:refs/heads/{self._branch}")
            except ConfigWriteConflict:
                await self._discard_local()
                remote = await self._rev_parse(f"origin/{self._branch}")
                raise ConfigWriteConflict(file, expected_revision, remote) from None
            except PipelineError:
                await self._discard_local()
                raise

            revision = await self._rev_parse("HEAD")
        logger.info("Committed %s to %s@%s", file, self._branch, revision[:12])
        return revision

    async def head(self) -> str | None:
        async with self._lock:
            await self._sync()
            return await self._rev_parse("HEAD")

    async def history(self, limit: int = 20) -> list[ConfigCommit]:
        async with self._lock:
            await self._sync()
            if await self._rev_parse("HEAD") is None:
                return []
            fmt = _FIELD_SEP.join(("%H", "%P", "%an <%ae>", "%aI", "%s"))
            out = await self._git("log", f"--format={fmt}", "-n", str(limit))
        commits: list[ConfigCommit] = []
        for line in out.splitlines():
            revision, parents, author, date, subject = line.split(_FIELD_SEP, 4)
            commits.append(
                ConfigCommit(
                    revision=revision,
                    parent=parents.split()[0] if parents else None,
                    message=subject,
                    author=author,
                    committed_at=datetime.fromisoformat(date),
                )
            )
        return commits

    # ------------------------------------------------------------------
    # git plumbing
    # ------------------------------------------------------------------

    async def _sync(self) -> None:
        """Make the clone match origin/<branch> exactly."""
        if not (self._workdir / ".git").is_dir():
            self._workdir.parent.mkdir(parents=True, exist_ok=True)
            logger.info("Cloning %s into %s", self._url, self._workdir)
            await self._git(
                "clone", "--branch", self._branch, self._url, str(self._workdir),
                cwd=self._workdir.parent,
            )
            return
        await self._git("fetch", "--prune", "origin", self._branch)
        await self._discard_local()

    async def _discard_local(self) -> None:
        await self._git("reset", "--hard", f"origin/{self._branch}")
        await self._git("clean", "-fdq")

    async def _rev_parse(self, ref: str) -> str | None:
        try:
            out = await self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")
        except GitCommandError:
            return None
        return out.strip() or None

    def _resolve(self, file: str) -> Path:
        path = (self._workdir / file).resolve()
        if not path.is_relative_to(self._workdir.resolve()):
            raise GitCommandError(f"Path escapes repository: {file}")
        return path

    async def _git(self, *args: str, cwd: Path | None = None) -> str:
        env = dict(os.environ, GIT_TERMINAL_PROMPT="0", LC_ALL="C")
        proc = await asyncio.create_subprocess_exec(
            "git", *args,
            cwd=str(cwd or self._workdir),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
            **SESSION_KWARGS,
        )
        try:
            stdout, stderr = await communicate_or_kill(proc, self._timeout_s)
        except asyncio.TimeoutError as e:
            raise GitCommandError(f"git {args[0]} timed out after {self._timeout_s:.0f}s") from e

        if proc.returncode != 0:
            err = stderr.decode("utf-8", errors="replace").strip()
            if _AUTH_PATTERNS.search(err):
                raise ConfigAuthError(f"git {args[0]}: {err}")
            if args[0] == "push" and _REJECT_PATTERNS.search(err):
                raise ConfigWriteConflict("<push>", None, None)
            raise GitCommandError(f"git {' '.join(args[:2])} exited {proc.returncode}: {err}")
        return stdout.decode("utf-8", errors="replace")


def _split_author(author: str) -> tuple[str, str]:
    match = re.match(r"^\s*(.*?)\s*<([^>]+)>\s*$", author)
    if match:
        return match.group(1) or match.group(2), match.group(2)
    return author, f"{author}@localhost"
