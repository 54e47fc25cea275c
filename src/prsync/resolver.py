"""Map a pull request to the local branches that hold it."""

from __future__ import annotations

import asyncio
from typing import List

from .markers import branches_for_pull_request
from .models import PullRequestRef
from .repository import RepositorySession
from .urls import same_repository


async def is_pull_request_from_fork(session: RepositorySession, pr: PullRequestRef) -> bool:
    """True unless the head repository is the session's own origin.

    A pull request whose head repository was deleted (no clone URL) counts
    as a fork.
    """
    clone_url = await asyncio.to_thread(lambda: session.clone_url)
    return not same_repository(pr.head.clone_url, clone_url)


async def get_local_branches(session: RepositorySession, pr: PullRequestRef) -> List[str]:
    """Local branch names associated with ``pr``.

    Same-repository pull requests map to their head ref by name, whether or
    not such a branch exists yet. Fork pull requests map to every branch
    carrying a marker with the pull request number.
    """
    if not await is_pull_request_from_fork(session, pr):
        return [pr.head.ref]
    return await branches_for_pull_request(session, pr.number)
