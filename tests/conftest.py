from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable, Optional

import pytest
from git import Actor, Repo

from prsync.config_schema import PrSyncConfig
from prsync.models import BaseRef, HeadRef, PullRequestRef
from prsync.repository import RepositorySession

IDENTITY = Actor("Test", "test@example.com")


def pytest_sessionstart(session):  # type: ignore[override]
    root = Path(__file__).resolve().parents[1]
    src = root / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))
    os.environ.setdefault("PYTHONPATH", str(src))
    # Keep test runs out of ~/.prsync/logs
    os.environ.setdefault("PRSYNC_LOG_DISABLE_FILE", "1")


@pytest.fixture(scope="session")
def anyio_backend():
    """Configure anyio to use asyncio backend only.

    The engine runs git calls through asyncio.to_thread, which trio does not
    provide.
    """
    return "asyncio"


def configure_identity(repo: Repo) -> None:
    with repo.config_writer() as config:
        config.set_value("user", "name", IDENTITY.name)
        config.set_value("user", "email", IDENTITY.email)
        config.set_value("pull", "rebase", "false")


def commit_file(repo: Repo, rel_path: str, content: str, message: str) -> str:
    """Write, stage and commit one file. Returns the new commit sha."""
    path = Path(repo.working_tree_dir) / rel_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([rel_path])
    commit = repo.index.commit(message, author=IDENTITY, committer=IDENTITY)
    return commit.hexsha


@pytest.fixture
def upstream_repo(tmp_path: Path) -> Path:
    """Bare 'origin' repository at <tmp>/upstream/repo.git with one commit on main."""
    seed_path = tmp_path / "seed"
    seed = Repo.init(seed_path)
    configure_identity(seed)
    commit_file(seed, "README.md", "# Repo\n", "Initial commit")
    seed.git.branch("-M", "main")

    bare_path = tmp_path / "upstream" / "repo.git"
    bare = Repo.init(bare_path, bare=True, mkdir=True)
    seed.create_remote("origin", str(bare_path))
    seed.git.push("origin", "main")
    bare.git.symbolic_ref("HEAD", "refs/heads/main")
    return bare_path


@pytest.fixture
def seed_repo(upstream_repo: Path, tmp_path: Path) -> Repo:
    """Another contributor's clone of the upstream, used to push changes."""
    return Repo(tmp_path / "seed")


@pytest.fixture
def local_repo(upstream_repo: Path, tmp_path: Path) -> Path:
    """The working copy under test, cloned from the upstream."""
    path = tmp_path / "work"
    repo = Repo.clone_from(str(upstream_repo), path)
    configure_identity(repo)
    return path


@pytest.fixture
def fork_repo(upstream_repo: Path, tmp_path: Path) -> Path:
    """Bare fork of the upstream owned by 'alice'."""
    path = tmp_path / "alice" / "repo.git"
    Repo.clone_from(str(upstream_repo), path, bare=True)
    return path


@pytest.fixture
def push_branch(tmp_path: Path) -> Callable[..., str]:
    """Push a branch with one extra commit to a bare repository.

    Returns the sha of the pushed tip.
    """
    counter = {"n": 0}

    def _push(remote: Path, branch: str, rel_path: str = "feature.txt", content: str = "feature\n") -> str:
        counter["n"] += 1
        work = Repo.clone_from(str(remote), tmp_path / f"pusher-{counter['n']}")
        configure_identity(work)
        work.git.checkout("-B", branch)
        sha = commit_file(work, rel_path, content, f"Change {rel_path}")
        work.git.push("origin", f"{branch}:{branch}")
        return sha

    return _push


@pytest.fixture
def test_config(tmp_path: Path) -> PrSyncConfig:
    return PrSyncConfig.model_validate(
        {
            "sync": {"lock_timeout": 5},
            "create": {"settle_delay": 0, "visibility_timeout": 2, "poll_interval": 0.05},
            "extract": {"cache_dir": str(tmp_path / "extract")},
        }
    )


@pytest.fixture
def session(local_repo: Path, test_config: PrSyncConfig) -> RepositorySession:
    return RepositorySession.open(local_repo, test_config)


@pytest.fixture
def make_pr(upstream_repo: Path) -> Callable[..., PullRequestRef]:
    """Factory for pull request descriptors; defaults describe a same-repo PR."""

    def _make(
        number: int = 1,
        title: str = "Add feature",
        head_ref: str = "feature",
        head_sha: str = "",
        clone_url: Optional[str] = None,
        owner: str = "upstream",
        base_sha: str = "",
    ) -> PullRequestRef:
        return PullRequestRef(
            number=number,
            title=title,
            head=HeadRef(
                ref=head_ref,
                sha=head_sha,
                clone_url=clone_url if clone_url is not None else str(upstream_repo),
                owner=owner,
                label=f"{owner}:{head_ref}",
            ),
            base=BaseRef(ref="main", sha=base_sha, label="upstream:main"),
        )

    return _make
