"""Checkout coordinator tests against real local repositories.

Layout: upstream bare repo at <tmp>/upstream/repo.git (origin of the working
copy) and a fork at <tmp>/alice/repo.git, so the fork's remote is 'alice'.
"""

from __future__ import annotations

import pytest
from git import Repo

from prsync.checkout import checkout, checkout_pull_request, switch_to_branch
from prsync.errors import BranchNotFoundError, DirtyWorkingTreeError, TransportError
from prsync.markers import read_markers
from prsync.models import ConfigMarker


@pytest.mark.anyio
async def test_existing_branch_is_only_checked_out(session, local_repo, make_pr):
    repo = Repo(local_repo)
    repo.git.branch("pr/1-mine")
    remotes_before = [r.name for r in repo.remotes]

    await checkout(session, make_pr(), "pr/1-mine")

    assert repo.active_branch.name == "pr/1-mine"
    assert [r.name for r in repo.remotes] == remotes_before
    assert await read_markers(session) == []


@pytest.mark.anyio
async def test_same_repository_checkout_fetches_origin(session, local_repo, upstream_repo, make_pr, push_branch):
    sha = push_branch(upstream_repo, "feature")

    await checkout(session, make_pr(head_ref="feature", head_sha=sha), "feature")

    repo = Repo(local_repo)
    assert repo.active_branch.name == "feature"
    assert repo.head.commit.hexsha == sha
    assert repo.active_branch.tracking_branch().path == "refs/remotes/origin/feature"
    assert await read_markers(session) == []


@pytest.mark.anyio
async def test_fork_checkout_full_sequence(session, local_repo, fork_repo, make_pr, push_branch):
    sha = push_branch(fork_repo, "feature")
    pr = make_pr(number=3, title="Add feature", head_ref="feature", head_sha=sha, clone_url=str(fork_repo), owner="alice")

    await checkout(session, pr, "pr/3-add-feature")

    repo = Repo(local_repo)
    assert repo.remote("alice").url == str(fork_repo)
    assert repo.active_branch.name == "pr/3-add-feature"
    assert repo.head.commit.hexsha == sha
    assert repo.active_branch.tracking_branch().path == "refs/remotes/alice/feature"
    assert await read_markers(session) == [ConfigMarker("pr/3-add-feature", 3)]


@pytest.mark.anyio
async def test_fork_checkout_repoints_existing_remote(session, local_repo, fork_repo, make_pr, push_branch, tmp_path):
    Repo(local_repo).create_remote("alice", str(tmp_path / "somewhere-else"))
    sha = push_branch(fork_repo, "feature")
    pr = make_pr(number=3, head_ref="feature", head_sha=sha, clone_url=str(fork_repo), owner="alice")

    await checkout(session, pr, "pr/3-x")

    assert Repo(local_repo).remote("alice").url == str(fork_repo)


@pytest.mark.anyio
async def test_fork_checkout_stops_at_first_failure(session, local_repo, fork_repo, make_pr):
    # Head ref does not exist in the fork: the refspec fetch fails
    pr = make_pr(number=3, head_ref="missing", clone_url=str(fork_repo), owner="alice")

    with pytest.raises(TransportError):
        await checkout(session, pr, "pr/3-x")

    repo = Repo(local_repo)
    assert repo.active_branch.name == "main"
    assert "pr/3-x" not in [h.name for h in repo.heads]
    assert await read_markers(session) == []


@pytest.mark.anyio
async def test_switch_to_existing_fork_branch(session, local_repo, fork_repo, make_pr, push_branch):
    sha = push_branch(fork_repo, "feature")
    pr = make_pr(number=3, head_ref="feature", head_sha=sha, clone_url=str(fork_repo), owner="alice")
    await checkout(session, pr, "pr/3-add-feature")
    Repo(local_repo).git.checkout("main")

    assert await switch_to_branch(session, pr) == "pr/3-add-feature"
    assert Repo(local_repo).active_branch.name == "pr/3-add-feature"


@pytest.mark.anyio
async def test_switch_creates_branch_from_origin(session, local_repo, upstream_repo, make_pr, push_branch):
    sha = push_branch(upstream_repo, "feature")

    assert await switch_to_branch(session, make_pr(head_ref="feature", head_sha=sha)) == "feature"

    repo = Repo(local_repo)
    assert repo.active_branch.name == "feature"
    assert repo.head.commit.hexsha == sha
    assert repo.active_branch.tracking_branch().path == "refs/remotes/origin/feature"


@pytest.mark.anyio
async def test_switch_missing_everywhere_raises_before_mutation(session, local_repo, make_pr):
    with pytest.raises(BranchNotFoundError, match="refs/remotes/origin/nowhere"):
        await switch_to_branch(session, make_pr(head_ref="nowhere"))

    repo = Repo(local_repo)
    assert repo.active_branch.name == "main"
    assert "nowhere" not in [h.name for h in repo.heads]


@pytest.mark.anyio
async def test_switch_fork_without_marker_raises(session, fork_repo, make_pr):
    pr = make_pr(number=3, clone_url=str(fork_repo), owner="alice")
    with pytest.raises(BranchNotFoundError):
        await switch_to_branch(session, pr)


@pytest.mark.anyio
async def test_checkout_pull_request_uses_default_name(session, local_repo, fork_repo, make_pr, push_branch):
    sha = push_branch(fork_repo, "feature")
    pr = make_pr(number=12, title="Fix: the thing!", head_ref="feature", head_sha=sha, clone_url=str(fork_repo), owner="alice")

    assert await checkout_pull_request(session, pr) == "pr/12-fix-the-thing"
    Repo(local_repo).git.checkout("main")
    # Second time round the marker resolves the existing branch
    assert await checkout_pull_request(session, pr) == "pr/12-fix-the-thing"


@pytest.mark.anyio
async def test_checkout_pull_request_refuses_dirty_tree(session, local_repo, make_pr):
    (local_repo / "README.md").write_text("changed\n")

    with pytest.raises(DirtyWorkingTreeError):
        await checkout_pull_request(session, make_pr())

    assert Repo(local_repo).active_branch.name == "main"


@pytest.mark.anyio
async def test_fork_remote_keeps_owner_case(session, local_repo, upstream_repo, make_pr, push_branch, tmp_path):
    fork = tmp_path / "Alice" / "repo.git"
    Repo.clone_from(str(upstream_repo), fork, bare=True)
    sha = push_branch(fork, "feature")
    pr = make_pr(number=4, head_ref="feature", head_sha=sha, clone_url=str(fork), owner="Alice")

    await checkout(session, pr, "pr/4-x")

    repo = Repo(local_repo)
    assert sorted(r.name for r in repo.remotes) == ["Alice", "origin"]
    assert repo.active_branch.tracking_branch().path == "refs/remotes/Alice/feature"


@pytest.mark.anyio
async def test_fork_checkout_reuses_mixed_case_remote(session, local_repo, upstream_repo, make_pr, push_branch, tmp_path):
    fork = tmp_path / "Alice" / "repo.git"
    Repo.clone_from(str(upstream_repo), fork, bare=True)
    Repo(local_repo).create_remote("Alice", str(fork))
    sha = push_branch(fork, "feature")
    pr = make_pr(number=4, head_ref="feature", head_sha=sha, clone_url=str(fork), owner="Alice")

    await checkout(session, pr, "pr/4-x")

    assert sorted(r.name for r in Repo(local_repo).remotes) == ["Alice", "origin"]


@pytest.mark.anyio
async def test_switch_marker_without_branch_anywhere(session, local_repo, fork_repo, make_pr):
    repo = Repo(local_repo)
    repo.git.config("--local", "branch.pr/3-gone.ghfvs-pr", "3")
    pr = make_pr(number=3, clone_url=str(fork_repo), owner="alice")

    with pytest.raises(BranchNotFoundError, match="refs/remotes/origin/pr/3-gone"):
        await switch_to_branch(session, pr)

    assert repo.active_branch.name == "main"
    assert "pr/3-gone" not in [h.name for h in repo.heads]
