"""Bring a pull request's branch into the working copy."""

from __future__ import annotations

import asyncio

from .errors import BranchNotFoundError, DirtyWorkingTreeError, PrSyncError
from .markers import write_marker
from .models import PullRequestRef
from .naming import default_local_branch_name
from .observability import log_debug, timeit
from .repository import REMOTE_REFS_PREFIX, RepositorySession
from .resolver import get_local_branches, is_pull_request_from_fork
from .transport import GitTransport
from .urls import RepositoryUrl


async def checkout(session: RepositorySession, pr: PullRequestRef, local_branch_name: str) -> None:
    """Check out ``pr`` as ``local_branch_name``.

    An existing branch is checked out as-is. A same-repository pull request
    is fetched from origin and checked out by name. A fork pull request gets
    a remote named after the fork owner, its head fetched into the local
    branch, upstream tracking and a config marker, in that order. The first
    failing step raises and later steps do not run.

    Raises:
        TransportError: If a fetch fails
        GitOperationError: If a local step fails
    """
    transport = GitTransport(session)
    async with session.exclusive():
        with timeit("checkout", pr=pr.number, branch=local_branch_name) as info:
            existing = await asyncio.to_thread(session.branch, local_branch_name)
            if existing is not None:
                info["path"] = "existing"
                await asyncio.to_thread(session.checkout, local_branch_name)
                return

            if not await is_pull_request_from_fork(session, pr):
                info["path"] = "same-repo"
                await transport.fetch(session.origin_remote)
                await asyncio.to_thread(session.checkout, local_branch_name)
                return

            info["path"] = "fork"
            if not pr.head.clone_url:
                raise PrSyncError(f"Pull request #{pr.number} has no head repository")
            remote_name = RepositoryUrl.parse(pr.head.clone_url).owner
            refspec = f"{pr.head.ref}:{local_branch_name}"
            info["remote"] = remote_name

            await transport.set_remote(remote_name, pr.head.clone_url)
            await transport.fetch(remote_name)
            await transport.fetch(remote_name, [refspec])
            await asyncio.to_thread(session.checkout, local_branch_name)
            await asyncio.to_thread(
                session.set_tracking_branch,
                local_branch_name,
                f"{REMOTE_REFS_PREFIX}{remote_name}/{pr.head.ref}",
            )
            await write_marker(session, local_branch_name, pr.number)


async def switch_to_branch(session: RepositorySession, pr: PullRequestRef) -> str:
    """Check out the first local branch already associated with ``pr``.

    A branch that exists only as ``origin/<name>`` is created at that tip
    with tracking set. Returns the branch name.

    Raises:
        BranchNotFoundError: If no branch is associated with ``pr``, or the
            associated branch exists neither locally nor on origin
    """
    transport = GitTransport(session)
    async with session.exclusive():
        with timeit("switch", pr=pr.number) as info:
            branches = await get_local_branches(session, pr)
            if not branches:
                raise BranchNotFoundError(f"No local branch is associated with pull request #{pr.number}")
            branch_name = branches[0]
            info["branch"] = branch_name

            origin = session.origin_remote
            await transport.fetch(origin)

            if await asyncio.to_thread(session.branch, branch_name) is None:
                tip = await asyncio.to_thread(session.remote_ref, origin, branch_name)
                tracked = f"{REMOTE_REFS_PREFIX}{origin}/{branch_name}"
                if tip is None:
                    raise BranchNotFoundError(f"Could not find branch '{tracked}'.")
                log_debug("creating branch from remote", branch=branch_name, tip=tip)
                await asyncio.to_thread(session.create_branch, branch_name, tip)
                await asyncio.to_thread(session.set_tracking_branch, branch_name, tracked)

            await asyncio.to_thread(session.checkout, branch_name)
            return branch_name


async def checkout_pull_request(session: RepositorySession, pr: PullRequestRef) -> str:
    """Switch to ``pr``'s branch, creating it under a default name if needed.

    Returns the name of the checked-out branch.

    Raises:
        DirtyWorkingTreeError: If the working tree has uncommitted changes
    """
    async with session.exclusive():
        if await asyncio.to_thread(session.is_dirty):
            raise DirtyWorkingTreeError(
                "Cannot checkout as your working directory has uncommitted changes."
            )
        if await get_local_branches(session, pr):
            return await switch_to_branch(session, pr)
        name = await default_local_branch_name(session, pr.number, pr.title)
        await checkout(session, pr, name)
        return name
