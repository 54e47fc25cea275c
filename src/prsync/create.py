"""Push a branch and open a pull request for it."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol, runtime_checkable

from .errors import BranchNotFoundError, PullRequestCreationError
from .models import CreatedPullRequest
from .observability import log_debug, log_warning, timeit
from .repository import HEADS_PREFIX, RepositorySession
from .transport import GitTransport


@runtime_checkable
class PullRequestCreator(Protocol):
    """Hosting-service client that opens pull requests."""

    async def create_pull_request(
        self,
        source_repo: str,
        target_repo: str,
        source_branch: str,
        target_branch: str,
        title: str,
        body: str,
    ) -> CreatedPullRequest:
        ...


@runtime_checkable
class UsageTracker(Protocol):
    """Usage counter notified after each successful pull request creation."""

    async def increment_upstream_pull_request_count(self) -> None:
        ...


async def wait_until_visible(
    transport: GitTransport,
    remote: str,
    branch: str,
    sha: str,
    *,
    timeout: float,
    interval: float,
) -> bool:
    """Poll ``remote`` until it reports ``branch`` at ``sha``.

    Returns False if ``timeout`` elapses first.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    attempts = 0
    while True:
        attempts += 1
        if await transport.ls_remote_sha(remote, branch) == sha:
            log_debug("pushed branch visible", remote=remote, branch=branch, attempts=attempts)
            return True
        if loop.time() + interval > deadline:
            return False
        await asyncio.sleep(interval)


async def push_and_create_pull_request(
    session: RepositorySession,
    creator: PullRequestCreator,
    *,
    target_repo: str,
    source_branch: str,
    target_branch: str,
    title: str,
    body: str = "",
    usage_tracker: Optional[UsageTracker] = None,
) -> CreatedPullRequest:
    """Push ``source_branch`` over http(s) and ask ``creator`` to open a pull request.

    The usage counter is incremented only after creation succeeds. When
    creation fails the branch stays pushed.

    Raises:
        BranchNotFoundError: If ``source_branch`` does not exist locally
        TransportError: If the push fails
        PullRequestCreationError: If the hosting service rejects the request
    """
    transport = GitTransport(session)
    create_config = session.config.create

    with timeit("create", branch=source_branch, target=target_branch) as info:
        async with session.exclusive():
            record = await asyncio.to_thread(session.branch, source_branch)
            if record is None:
                raise BranchNotFoundError(f"Branch '{source_branch}' does not exist")

            remote = await transport.get_http_remote(session.origin_remote)
            info["remote"] = remote
            ref = f"{HEADS_PREFIX}{source_branch}"
            await transport.push(remote, f"{ref}:{ref}")

            if not record.is_tracking:
                await asyncio.to_thread(session.set_tracking_branch, source_branch, remote)

        if create_config.confirm_visibility:
            visible = await wait_until_visible(
                transport,
                remote,
                source_branch,
                record.head_sha,
                timeout=create_config.visibility_timeout,
                interval=create_config.poll_interval,
            )
            if not visible:
                log_warning(
                    "pushed branch not yet visible on remote",
                    remote=remote,
                    branch=source_branch,
                    timeout=create_config.visibility_timeout,
                )
        if create_config.settle_delay > 0:
            await asyncio.sleep(create_config.settle_delay)

        source_repo = await asyncio.to_thread(lambda: session.clone_url) or str(session.path)
        try:
            created = await creator.create_pull_request(
                source_repo,
                target_repo,
                source_branch,
                target_branch,
                title,
                body,
            )
        except PullRequestCreationError:
            raise
        except Exception as exc:
            raise PullRequestCreationError(
                f"Could not create pull request for '{source_branch}': {exc}"
            ) from exc
        if created is None:
            raise PullRequestCreationError(f"No pull request returned for '{source_branch}'")
        info["pr"] = created.number

        if usage_tracker is not None:
            await usage_tracker.increment_upstream_pull_request_count()

    return created
