"""High-level pull request workflows for one working copy."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional, Tuple

from . import checkout as _checkout
from . import create as _create
from . import divergence as _divergence
from . import extract as _extract
from . import markers as _markers
from .config_schema import PrSyncConfig
from .errors import NoTrackingBranchError
from .models import (
    CheckoutState,
    CreatedPullRequest,
    DivergenceState,
    PullRequestRef,
    PullRequestStatus,
)
from .naming import default_local_branch_name
from .observability import log_debug
from .repository import RepositorySession
from .resolver import get_local_branches, is_pull_request_from_fork
from .templates import get_pull_request_template
from .urls import RepositoryUrl

INVALID_BRANCH_LABEL = "[Invalid]"
DIRTY_TREE_MESSAGE = "Cannot checkout as your working directory has uncommitted changes."


async def is_working_directory_clean(session: RepositorySession) -> bool:
    return not await asyncio.to_thread(session.is_dirty)


async def unmark_local_branch(session: RepositorySession) -> Optional[str]:
    """Forget which pull request the checked-out branch came from."""
    async with session.exclusive():
        return await _markers.clear_marker(session)


def branch_display_name(session: RepositorySession, label: Optional[str]) -> str:
    """Short form of an ``owner:ref`` label.

    The owner is dropped when it matches the owner of the local clone.
    """
    if label is None:
        return INVALID_BRANCH_LABEL
    owner, sep, ref = label.partition(":")
    if not sep:
        return label
    clone_url = session.clone_url
    try:
        clone_owner = RepositoryUrl.parse(clone_url).owner if clone_url else None
    except ValueError:
        clone_owner = None
    return ref if clone_owner is not None and owner.lower() == clone_owner.lower() else label


async def get_pull_request_status(session: RepositorySession, pr: PullRequestRef) -> PullRequestStatus:
    """Decide whether ``pr`` needs a checkout or can be pulled/pushed.

    When one of the pull request's branches is checked out, the result
    carries its divergence; otherwise it carries the checkout caption and,
    for a dirty working tree, the reason checkout is disabled.
    """
    branches = await get_local_branches(session, pr)
    current = await asyncio.to_thread(lambda: session.current_branch)

    if current is not None and current in branches:
        try:
            divergence = await _divergence.calculate_history_divergence(session)
        except NoTrackingBranchError:
            log_debug("status: checked-out branch has no upstream", branch=current)
            divergence = DivergenceState()
        return PullRequestStatus(
            local_branches=branches,
            update=_divergence.update_state(divergence),
        )

    if branches:
        caption = f"Checkout {branches[0]}"
    else:
        caption = f"Checkout to {await default_local_branch_name(session, pr.number, pr.title)}"
    disabled = None if await is_working_directory_clean(session) else DIRTY_TREE_MESSAGE
    return PullRequestStatus(
        local_branches=branches,
        checkout=CheckoutState(caption=caption, disabled_message=disabled),
    )


class PullRequestService:
    """All pull request operations bound to one repository session.

    Args:
        session: Working copy the operations act on
        creator: Hosting-service client, required only for ``create_pull_request``
        usage_tracker: Optional counter bumped after each created pull request
    """

    def __init__(
        self,
        session: RepositorySession,
        creator: Optional[_create.PullRequestCreator] = None,
        usage_tracker: Optional[_create.UsageTracker] = None,
    ):
        self.session = session
        self.creator = creator
        self.usage_tracker = usage_tracker

    @classmethod
    def open(cls, path: Path | str, config: Optional[PrSyncConfig] = None, **kwargs) -> "PullRequestService":
        return cls(RepositorySession.open(path, config), **kwargs)

    async def is_pull_request_from_fork(self, pr: PullRequestRef) -> bool:
        return await is_pull_request_from_fork(self.session, pr)

    async def get_local_branches(self, pr: PullRequestRef) -> List[str]:
        return await get_local_branches(self.session, pr)

    async def get_default_local_branch_name(self, number: int, title: str) -> str:
        return await default_local_branch_name(self.session, number, title)

    async def checkout(self, pr: PullRequestRef, local_branch_name: str) -> None:
        await _checkout.checkout(self.session, pr, local_branch_name)

    async def switch_to_branch(self, pr: PullRequestRef) -> str:
        return await _checkout.switch_to_branch(self.session, pr)

    async def checkout_pull_request(self, pr: PullRequestRef) -> str:
        return await _checkout.checkout_pull_request(self.session, pr)

    async def calculate_history_divergence(self) -> DivergenceState:
        return await _divergence.calculate_history_divergence(self.session)

    async def pull(self) -> None:
        await _divergence.pull(self.session)

    async def push(self) -> None:
        await _divergence.push(self.session)

    async def extract_file(self, sha: str, path: str) -> Optional[Path]:
        return await _extract.extract_file(self.session, sha, path)

    async def extract_diff_files(self, pr: PullRequestRef, path: str) -> Tuple[Optional[Path], Optional[Path]]:
        return await _extract.extract_diff_files(self.session, pr, path)

    async def unmark_local_branch(self) -> Optional[str]:
        return await unmark_local_branch(self.session)

    async def is_working_directory_clean(self) -> bool:
        return await is_working_directory_clean(self.session)

    async def get_pull_request_template(self) -> Optional[str]:
        return await get_pull_request_template(self.session)

    async def get_status(self, pr: PullRequestRef) -> PullRequestStatus:
        return await get_pull_request_status(self.session, pr)

    def branch_display_name(self, label: Optional[str]) -> str:
        return branch_display_name(self.session, label)

    async def create_pull_request(
        self,
        *,
        target_repo: str,
        source_branch: str,
        target_branch: str,
        title: str,
        body: str = "",
    ) -> CreatedPullRequest:
        if self.creator is None:
            raise ValueError("No pull request creator configured")
        return await _create.push_and_create_pull_request(
            self.session,
            self.creator,
            target_repo=target_repo,
            source_branch=source_branch,
            target_branch=target_branch,
            title=title,
            body=body,
            usage_tracker=self.usage_tracker,
        )
