"""Value types shared by the synchronization engine.

Pull request descriptors are immutable snapshots supplied by the caller.
Branch records and divergence counts are read live from the repository and
never cached between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

MARKER_SUFFIX = "ghfvs-pr"


@dataclass(frozen=True)
class HeadRef:
    """Source side of a pull request.

    Attributes:
        ref: Branch name in the head repository
        sha: Tip commit of the head branch
        clone_url: Clone URL of the repository owning the head branch
        owner: Login owning the head repository
        label: ``owner:ref`` label as reported by the hosting service
    """
    ref: str
    sha: str
    clone_url: Optional[str]
    owner: str
    label: Optional[str] = None


@dataclass(frozen=True)
class BaseRef:
    """Target side of a pull request."""
    ref: str
    sha: str
    label: Optional[str] = None


@dataclass(frozen=True)
class PullRequestRef:
    """Snapshot of a pull request as fetched from the hosting service."""
    number: int
    title: str
    head: HeadRef
    base: BaseRef
    body: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.number, bool) or not isinstance(self.number, int) or self.number <= 0:
            raise ValueError(f"Pull request number must be a positive integer, got {self.number!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PullRequestRef":
        """Build from a GitHub REST API pull request payload.

        Flat ``clone_url``/``owner`` keys on ``head`` are accepted as well, so
        hand-written descriptors do not need the nested ``repo``/``user``
        objects.
        """
        head = data.get("head") or {}
        base = data.get("base") or {}
        head_repo = head.get("repo") or {}
        head_user = head.get("user") or {}
        owner_login = (head_repo.get("owner") or {}).get("login")
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            body=data.get("body"),
            head=HeadRef(
                ref=head["ref"],
                sha=head.get("sha", ""),
                clone_url=head.get("clone_url") or head_repo.get("clone_url"),
                owner=head.get("owner") or head_user.get("login") or owner_login or "",
                label=head.get("label"),
            ),
            base=BaseRef(
                ref=base["ref"],
                sha=base.get("sha", ""),
                label=base.get("label"),
            ),
        )


@dataclass(frozen=True)
class LocalBranchRecord:
    """A local branch as currently stored in the repository."""
    name: str
    upstream: Optional[str]
    head_sha: str

    @property
    def is_tracking(self) -> bool:
        return self.upstream is not None


@dataclass(frozen=True)
class ConfigMarker:
    """Association between a local branch and a pull request number."""
    branch: str
    pr_number: int

    @property
    def key(self) -> str:
        return marker_key(self.branch)

    @property
    def value(self) -> str:
        return str(self.pr_number)


def marker_key(branch: str) -> str:
    """Git config key recording the pull request for ``branch``."""
    return f"branch.{branch}.{MARKER_SUFFIX}"


@dataclass(frozen=True)
class DivergenceState:
    """Ahead/behind counts of a local branch against its upstream."""
    commits_ahead: int = 0
    commits_behind: int = 0

    def __post_init__(self) -> None:
        if self.commits_ahead < 0 or self.commits_behind < 0:
            raise ValueError("Divergence counts must be non-negative")

    @property
    def up_to_date(self) -> bool:
        return self.commits_ahead == 0 and self.commits_behind == 0


@dataclass(frozen=True)
class CheckoutState:
    """Whether a pull request can be checked out, and under which name."""
    caption: str
    disabled_message: Optional[str] = None

    @property
    def enabled(self) -> bool:
        return self.disabled_message is None


@dataclass(frozen=True)
class UpdateState:
    """Pull/push availability for a checked-out pull request branch."""
    divergence: DivergenceState
    pull_disabled_message: Optional[str] = None
    push_disabled_message: Optional[str] = None

    @property
    def commits_ahead(self) -> int:
        return self.divergence.commits_ahead

    @property
    def commits_behind(self) -> int:
        return self.divergence.commits_behind

    @property
    def up_to_date(self) -> bool:
        return self.divergence.up_to_date

    @property
    def can_pull(self) -> bool:
        return self.pull_disabled_message is None

    @property
    def can_push(self) -> bool:
        return self.push_disabled_message is None


@dataclass(frozen=True)
class PullRequestStatus:
    """Result of evaluating a pull request against the local repository.

    Exactly one of ``checkout`` and ``update`` is set: ``update`` when one of
    the pull request's branches is checked out, ``checkout`` otherwise.
    """
    local_branches: List[str] = field(default_factory=list)
    checkout: Optional[CheckoutState] = None
    update: Optional[UpdateState] = None

    @property
    def is_checked_out(self) -> bool:
        return self.update is not None


@dataclass(frozen=True)
class CreatedPullRequest:
    """Identity of a pull request returned by the hosting service."""
    number: int
    url: Optional[str] = None
