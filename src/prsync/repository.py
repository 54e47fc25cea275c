"""Local repository access.

A :class:`RepositorySession` is the explicit handle every operation receives;
there is no process-wide "current repository". Its methods are synchronous
GitPython calls; the async workflows run them through ``asyncio.to_thread``.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncContextManager, Dict, List, Optional, Tuple

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from .config_loader import get_config
from .config_schema import PrSyncConfig
from .errors import FileExtractionError, GitOperationError, PrSyncError
from .lock import repository_lock
from .models import DivergenceState, LocalBranchRecord
from .observability import log_debug

REMOTE_REFS_PREFIX = "refs/remotes/"
HEADS_PREFIX = "refs/heads/"

# `git config --unset` exit status when the key does not exist
_CONFIG_KEY_MISSING = 5


def git_error_message(exc: GitCommandError) -> str:
    """Best human-readable text from a failed git command."""
    stderr = exc.stderr or ""
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", errors="replace")
    text = stderr.strip()
    if text.startswith("stderr:"):
        text = text[len("stderr:"):].strip().strip("'").strip()
    return text or str(exc)


def build_git_env() -> Dict[str, str]:
    """Environment for git subprocesses that must never prompt."""
    env: Dict[str, str] = {}
    env["GIT_TERMINAL_PROMPT"] = os.environ.get("GIT_TERMINAL_PROMPT", "0")
    env["GCM_INTERACTIVE"] = os.environ.get("GCM_INTERACTIVE", "never")
    env["GIT_HTTP_LOW_SPEED_LIMIT"] = os.environ.get("GIT_HTTP_LOW_SPEED_LIMIT", "1")
    env["GIT_HTTP_LOW_SPEED_TIME"] = os.environ.get("GIT_HTTP_LOW_SPEED_TIME", "30")
    # Fail fast instead of hanging on passphrase or host key prompts
    env["GIT_SSH_COMMAND"] = os.environ.get("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


class RepositorySession:
    """Handle on one local working copy plus the settings that govern it."""

    def __init__(self, path: Path, config: PrSyncConfig):
        self.path = Path(path)
        self.config = config
        self.env = build_git_env()
        repo = self.repo
        self.git_dir = Path(repo.common_dir)

    @classmethod
    def open(cls, path: Path | str, config: Optional[PrSyncConfig] = None) -> "RepositorySession":
        """Open the working copy containing ``path``.

        Raises:
            PrSyncError: If ``path`` is not inside a non-bare git repository
        """
        try:
            repo = Repo(path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise PrSyncError(f"Not a git repository: {path}")
        if repo.bare or repo.working_tree_dir is None:
            raise PrSyncError(f"Repository has no working tree: {path}")
        root = Path(repo.working_tree_dir)
        return cls(root, config if config is not None else get_config(root))

    @property
    def repo(self) -> Repo:
        """GitPython Repo object for the working copy."""
        try:
            return Repo(self.path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise PrSyncError(f"Not a git repository: {self.path}")

    @property
    def origin_remote(self) -> str:
        return self.config.git.origin_remote

    @property
    def config_path(self) -> Path:
        return self.git_dir / "config"

    # ------------------------------------------------------------------
    # Identity and HEAD
    # ------------------------------------------------------------------

    @property
    def clone_url(self) -> Optional[str]:
        """URL of the origin remote, or None when there is no such remote."""
        return self.remote_url(self.origin_remote)

    def remote_url(self, name: str) -> Optional[str]:
        return self.config_get(f"remote.{name}.url")

    def remote_names(self) -> List[str]:
        return [remote.name for remote in self.repo.remotes]

    @property
    def current_branch(self) -> Optional[str]:
        """Checked-out branch name; None on a detached HEAD."""
        try:
            return self.repo.active_branch.name
        except TypeError:
            return None

    @property
    def head_sha(self) -> Optional[str]:
        try:
            return self.repo.head.commit.hexsha
        except ValueError:
            # Unborn branch
            return None

    def is_dirty(self) -> bool:
        """True when tracked or untracked files differ from HEAD."""
        return self.repo.is_dirty(untracked_files=True)

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def branch_names(self) -> List[str]:
        return [head.name for head in self.repo.heads]

    def branch(self, name: str) -> Optional[LocalBranchRecord]:
        """Live record for a local branch, or None when it does not exist."""
        repo = self.repo
        try:
            head = repo.heads[name]
        except IndexError:
            return None
        tracking = head.tracking_branch()
        return LocalBranchRecord(
            name=head.name,
            upstream=tracking.path if tracking is not None else None,
            head_sha=head.commit.hexsha,
        )

    def remote_ref(self, remote: str, name: str) -> Optional[str]:
        """Tip sha of ``refs/remotes/<remote>/<name>``, or None."""
        return self.resolve_commit(f"{REMOTE_REFS_PREFIX}{remote}/{name}")

    def resolve_commit(self, rev: str) -> Optional[str]:
        try:
            return self.repo.git.rev_parse("--verify", "--quiet", f"{rev}^{{commit}}")
        except GitCommandError:
            return None

    def create_branch(self, name: str, commit: str) -> None:
        try:
            self.repo.git.branch(name, commit)
        except GitCommandError as exc:
            raise GitOperationError(f"Could not create branch '{name}': {git_error_message(exc)}") from exc
        log_debug("branch created", branch=name, commit=commit)

    def checkout(self, name: str) -> None:
        """Check out ``name``; git's DWIM creates it from a unique remote branch."""
        try:
            self.repo.git.checkout(name, env=self.env)
        except GitCommandError as exc:
            raise GitOperationError(f"Could not checkout '{name}': {git_error_message(exc)}") from exc

    def _split_remote_ref(self, upstream: str) -> Tuple[str, str]:
        rest = upstream[len(REMOTE_REFS_PREFIX):]
        # Longest matching remote name wins (remote names may contain '/')
        for remote in sorted(self.remote_names(), key=len, reverse=True):
            if rest.startswith(remote + "/"):
                return remote, rest[len(remote) + 1:]
        raise GitOperationError(f"No remote matches upstream '{upstream}'")

    def set_tracking_branch(self, branch: str, upstream: str) -> None:
        """Set the upstream of ``branch``.

        Args:
            branch: Local branch name
            upstream: Canonical remote-tracking ref (``refs/remotes/<remote>/<name>``)
                or a bare remote name, meaning the same-named branch on that remote
        """
        if upstream.startswith(REMOTE_REFS_PREFIX):
            remote, remote_branch = self._split_remote_ref(upstream)
        else:
            remote, remote_branch = upstream, branch
        self.config_set(f"branch.{branch}.remote", remote)
        self.config_set(f"branch.{branch}.merge", f"{HEADS_PREFIX}{remote_branch}")
        log_debug("tracking set", branch=branch, remote=remote, upstream=remote_branch)

    def tracking_branch(self) -> Optional[str]:
        """Canonical upstream ref of the current branch, or None."""
        name = self.current_branch
        if name is None:
            return None
        record = self.branch(name)
        return record.upstream if record else None

    def count_divergence(self, upstream: str) -> DivergenceState:
        """Count commits HEAD has that ``upstream`` lacks, and vice versa."""
        repo = self.repo
        ahead = sum(1 for _ in repo.iter_commits(f"{upstream}..HEAD"))
        behind = sum(1 for _ in repo.iter_commits(f"HEAD..{upstream}"))
        return DivergenceState(commits_ahead=ahead, commits_behind=behind)

    # ------------------------------------------------------------------
    # Local config
    # ------------------------------------------------------------------

    def config_get(self, key: str) -> Optional[str]:
        try:
            return self.repo.git.config("--local", "--get", key)
        except GitCommandError:
            return None

    def config_set(self, key: str, value: str) -> None:
        try:
            self.repo.git.config("--local", key, value)
        except GitCommandError as exc:
            raise GitOperationError(f"Could not set {key}: {git_error_message(exc)}") from exc

    def config_unset(self, key: str) -> bool:
        """Remove ``key``. Returns False when it was not set."""
        try:
            self.repo.git.config("--local", "--unset-all", key)
        except GitCommandError as exc:
            if exc.status == _CONFIG_KEY_MISSING:
                return False
            raise GitOperationError(f"Could not unset {key}: {git_error_message(exc)}") from exc
        return True

    def config_scan(self, pattern: str) -> List[Tuple[str, str]]:
        """All (key, value) pairs of the local config whose key matches ``pattern``."""
        try:
            output = self.repo.git.config("--local", "--get-regexp", pattern)
        except GitCommandError as exc:
            # Exit status 1: no matching key
            if exc.status == 1:
                return []
            raise GitOperationError(f"Could not read config: {git_error_message(exc)}") from exc
        pairs = []
        for line in output.splitlines():
            key, _, value = line.partition(" ")
            pairs.append((key, value))
        return pairs

    def config_stamp(self) -> Optional[Tuple[int, int]]:
        """(mtime_ns, size) of the local config file; changes on every write."""
        try:
            stat = self.config_path.stat()
        except FileNotFoundError:
            return None
        return stat.st_mtime_ns, stat.st_size

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def read_blob(self, sha: str, path: str) -> Optional[bytes]:
        """Contents of ``path`` at commit ``sha``; None when the path is absent.

        Raises:
            FileExtractionError: If ``sha`` does not name a local commit
        """
        repo = self.repo
        try:
            repo.git.cat_file("-e", f"{sha}^{{commit}}")
        except GitCommandError as exc:
            raise FileExtractionError(f"Commit {sha} is not available locally") from exc
        commit = repo.commit(sha)
        try:
            item = commit.tree / path
        except KeyError:
            return None
        if item.type != "blob":
            return None
        return item.data_stream.read()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def exclusive(self) -> AsyncContextManager[None]:
        """Async context manager serializing git-mutating workflows on this repo."""
        return repository_lock(
            self.git_dir,
            timeout=self.config.sync.lock_timeout,
            ttl=self.config.sync.lock_ttl,
        )

    def __repr__(self) -> str:
        return f"RepositorySession({str(self.path)!r})"
