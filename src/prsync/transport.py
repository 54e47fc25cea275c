"""Network-facing git operations.

Every call runs in a worker thread, carries the non-interactive git
environment of its session and is killed after the configured timeout. A
failure raises :class:`TransportError` with git's own message; nothing is
retried here.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from git import GitCommandError

from .errors import GitOperationError, TransportError
from .observability import log_debug, timeit
from .repository import RepositorySession, git_error_message
from .urls import RepositoryUrl, is_http_url, is_local_url


class GitTransport:
    """Fetch, push, pull and remote management for one session."""

    def __init__(self, session: RepositorySession):
        self.session = session

    def _timeout(self, value: float) -> Optional[float]:
        return value if value > 0 else None

    # ------------------------------------------------------------------
    # Remote traffic
    # ------------------------------------------------------------------

    def _fetch(self, remote: str, refspecs: Iterable[str]) -> None:
        refspecs = list(refspecs)
        with timeit("git.fetch", remote=remote, refspecs=refspecs):
            try:
                self.session.repo.git.fetch(
                    remote,
                    *refspecs,
                    env=self.session.env,
                    kill_after_timeout=self._timeout(self.session.config.sync.fetch_timeout),
                )
            except GitCommandError as exc:
                raise TransportError(f"fetch {remote} failed: {git_error_message(exc)}") from exc

    async def fetch(self, remote: str, refspecs: Optional[Iterable[str]] = None) -> None:
        """Fetch ``remote``; with ``refspecs``, fetch exactly those refspecs."""
        await asyncio.to_thread(self._fetch, remote, refspecs or ())

    def _push(self, remote: str, refspec: str) -> None:
        with timeit("git.push", remote=remote, refspec=refspec):
            try:
                self.session.repo.git.push(
                    remote,
                    refspec,
                    env=self.session.env,
                    kill_after_timeout=self._timeout(self.session.config.sync.push_timeout),
                )
            except GitCommandError as exc:
                raise TransportError(f"push to {remote} failed: {git_error_message(exc)}") from exc

    async def push(self, remote: str, refspec: str) -> None:
        await asyncio.to_thread(self._push, remote, refspec)

    def _pull(self) -> None:
        with timeit("git.pull", branch=self.session.current_branch):
            try:
                self.session.repo.git.pull(
                    "--no-rebase",
                    "--no-edit",
                    env=self.session.env,
                    kill_after_timeout=self._timeout(self.session.config.sync.push_timeout),
                )
            except GitCommandError as exc:
                raise TransportError(f"pull failed: {git_error_message(exc)}") from exc

    async def pull(self) -> None:
        """Fetch the upstream of the current branch and merge it."""
        await asyncio.to_thread(self._pull)

    def _ls_remote_sha(self, remote: str, branch: str) -> Optional[str]:
        try:
            output = self.session.repo.git.ls_remote(
                remote,
                f"refs/heads/{branch}",
                env=self.session.env,
                kill_after_timeout=self._timeout(self.session.config.sync.fetch_timeout),
            )
        except GitCommandError as exc:
            raise TransportError(f"ls-remote {remote} failed: {git_error_message(exc)}") from exc
        for line in output.splitlines():
            sha, _, ref = line.partition("\t")
            if ref == f"refs/heads/{branch}":
                return sha
        return None

    async def ls_remote_sha(self, remote: str, branch: str) -> Optional[str]:
        """Tip of ``branch`` as the remote reports it right now; None if absent."""
        return await asyncio.to_thread(self._ls_remote_sha, remote, branch)

    # ------------------------------------------------------------------
    # Remote configuration
    # ------------------------------------------------------------------

    def _set_remote(self, name: str, url: str) -> None:
        repo = self.session.repo
        try:
            existing = self.session.remote_url(name)
            if existing is None:
                repo.git.remote("add", name, url)
            elif existing != url:
                repo.git.remote("set-url", name, url)
            else:
                return
        except GitCommandError as exc:
            raise GitOperationError(f"Could not configure remote '{name}': {git_error_message(exc)}") from exc
        log_debug("remote configured", remote=name, url=url, replaced=existing)

    async def set_remote(self, name: str, url: str) -> None:
        """Add ``name`` pointing at ``url``, or repoint it when it exists."""
        await asyncio.to_thread(self._set_remote, name, url)

    async def get_http_remote(self, name: str) -> str:
        """Name of a remote reaching the same repository as ``name`` over http(s).

        http(s) and local remotes are returned as-is. For ssh remotes a
        companion ``<name><suffix>`` remote with the https URL is added or
        updated.

        Raises:
            GitOperationError: If ``name`` does not exist
        """
        url = await asyncio.to_thread(self.session.remote_url, name)
        if url is None:
            raise GitOperationError(f"Remote '{name}' does not exist")
        if is_http_url(url) or is_local_url(url):
            return name
        http_url = RepositoryUrl.parse(url).to_https()
        http_name = f"{name}{self.session.config.git.http_remote_suffix}"
        await self.set_remote(http_name, http_url)
        return http_name
