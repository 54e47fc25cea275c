from __future__ import annotations

import pytest
from git import Repo

from prsync.divergence import (
    MUST_PULL_BEFORE_PUSH,
    NO_COMMITS_TO_PULL,
    NO_COMMITS_TO_PUSH,
    calculate_history_divergence,
    pull,
    push,
    update_state,
)
from prsync.errors import NoTrackingBranchError, TransportError
from prsync.models import DivergenceState

from conftest import commit_file


@pytest.fixture
def tracking_feature(local_repo, upstream_repo, push_branch):
    """Working copy on 'feature' tracking origin/feature."""
    push_branch(upstream_repo, "feature")
    repo = Repo(local_repo)
    repo.git.fetch("origin")
    repo.git.checkout("-b", "feature", "--track", "origin/feature")
    return repo


class TestUpdateState:

    def test_up_to_date(self):
        state = update_state(DivergenceState(0, 0))
        assert state.up_to_date
        assert state.pull_disabled_message == NO_COMMITS_TO_PULL
        assert state.push_disabled_message == NO_COMMITS_TO_PUSH

    def test_ahead_only(self):
        state = update_state(DivergenceState(2, 0))
        assert state.pull_disabled_message == NO_COMMITS_TO_PULL
        assert state.can_push

    def test_behind_only(self):
        state = update_state(DivergenceState(0, 3))
        assert state.can_pull
        assert state.push_disabled_message == NO_COMMITS_TO_PUSH

    def test_diverged_requires_pull_first(self):
        state = update_state(DivergenceState(1, 1))
        assert state.can_pull
        assert state.push_disabled_message == MUST_PULL_BEFORE_PUSH

    def test_negative_counts_rejected(self):
        with pytest.raises(ValueError):
            DivergenceState(-1, 0)


@pytest.mark.anyio
async def test_divergence_counts_both_sides(session, tracking_feature, seed_repo):
    commit_file(tracking_feature, "local.txt", "mine\n", "Local work")
    seed_repo.git.fetch("origin")
    seed_repo.git.checkout("-B", "feature", "origin/feature")
    commit_file(seed_repo, "remote.txt", "theirs\n", "Remote work 1")
    commit_file(seed_repo, "remote2.txt", "theirs\n", "Remote work 2")
    seed_repo.git.push("origin", "feature")

    state = await calculate_history_divergence(session)

    assert (state.commits_ahead, state.commits_behind) == (1, 2)


@pytest.mark.anyio
async def test_divergence_up_to_date(session, tracking_feature):
    assert (await calculate_history_divergence(session)).up_to_date


@pytest.mark.anyio
async def test_divergence_requires_upstream(session, local_repo):
    Repo(local_repo).git.checkout("-b", "local-only")
    with pytest.raises(NoTrackingBranchError):
        await calculate_history_divergence(session)


@pytest.mark.anyio
async def test_divergence_fetch_failure_propagates(session, tracking_feature, upstream_repo, tmp_path):
    upstream_repo.rename(tmp_path / "gone.git")
    with pytest.raises(TransportError):
        await calculate_history_divergence(session)


@pytest.mark.anyio
async def test_pull_brings_in_remote_commits(session, tracking_feature, seed_repo):
    seed_repo.git.fetch("origin")
    seed_repo.git.checkout("-B", "feature", "origin/feature")
    sha = commit_file(seed_repo, "remote.txt", "theirs\n", "Remote work")
    seed_repo.git.push("origin", "feature")

    await pull(session)

    assert tracking_feature.head.commit.hexsha == sha
    assert (await calculate_history_divergence(session)).up_to_date


@pytest.mark.anyio
async def test_push_publishes_local_commits(session, tracking_feature, upstream_repo):
    sha = commit_file(tracking_feature, "local.txt", "mine\n", "Local work")

    await push(session)

    assert Repo(upstream_repo).commit("feature").hexsha == sha
    assert (await calculate_history_divergence(session)).up_to_date
