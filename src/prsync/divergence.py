"""Ahead/behind tracking and pull/push for the checked-out branch."""

from __future__ import annotations

import asyncio
from typing import Optional, Tuple

from .errors import NoTrackingBranchError
from .models import DivergenceState, UpdateState
from .observability import timeit
from .repository import HEADS_PREFIX, RepositorySession
from .transport import GitTransport

NO_COMMITS_TO_PULL = "No commits to pull"
NO_COMMITS_TO_PUSH = "No commits to push"
MUST_PULL_BEFORE_PUSH = "You must pull before you can push"


def _upstream(session: RepositorySession) -> Tuple[str, str, str]:
    """(branch, remote, merge ref) of the current branch's upstream."""
    branch = session.current_branch
    if branch is None:
        raise NoTrackingBranchError("HEAD is detached")
    remote = session.config_get(f"branch.{branch}.remote")
    merge = session.config_get(f"branch.{branch}.merge")
    if not remote or not merge:
        raise NoTrackingBranchError(f"Branch '{branch}' has no upstream")
    return branch, remote, merge


async def calculate_history_divergence(session: RepositorySession) -> DivergenceState:
    """Fetch the upstream's remote, then count commits ahead and behind.

    Raises:
        NoTrackingBranchError: If the current branch has no upstream
        TransportError: If the fetch fails
    """
    branch, remote, _ = await asyncio.to_thread(_upstream, session)
    async with session.exclusive():
        with timeit("divergence", branch=branch, remote=remote) as info:
            await GitTransport(session).fetch(remote)
            upstream: Optional[str] = await asyncio.to_thread(session.tracking_branch)
            if upstream is None:
                raise NoTrackingBranchError(f"Branch '{branch}' has no upstream")
            state = await asyncio.to_thread(session.count_divergence, upstream)
            info.update(ahead=state.commits_ahead, behind=state.commits_behind)
    return state


def update_state(divergence: DivergenceState) -> UpdateState:
    """Pull/push availability for a branch with the given divergence.

    When nothing is ahead the push message is "No commits to push" even if
    the branch is also behind.
    """
    pull_disabled = NO_COMMITS_TO_PULL if divergence.commits_behind == 0 else None
    if divergence.commits_ahead == 0:
        push_disabled: Optional[str] = NO_COMMITS_TO_PUSH
    elif divergence.commits_behind > 0:
        push_disabled = MUST_PULL_BEFORE_PUSH
    else:
        push_disabled = None
    return UpdateState(
        divergence=divergence,
        pull_disabled_message=pull_disabled,
        push_disabled_message=push_disabled,
    )


async def pull(session: RepositorySession) -> None:
    """Merge the upstream of the current branch into it."""
    async with session.exclusive():
        await asyncio.to_thread(_upstream, session)
        await GitTransport(session).pull()


async def push(session: RepositorySession) -> None:
    """Push HEAD to the upstream branch on the upstream's remote."""
    async with session.exclusive():
        _, remote, merge = await asyncio.to_thread(_upstream, session)
        if not merge.startswith(HEADS_PREFIX):
            merge = f"{HEADS_PREFIX}{merge}"
        await GitTransport(session).push(remote, f"HEAD:{merge}")
