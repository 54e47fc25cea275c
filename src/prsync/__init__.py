"""prsync: keep local git branches in step with pull requests."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("prsync")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

from .models import (  # noqa: F401
    BaseRef,
    CheckoutState,
    ConfigMarker,
    DivergenceState,
    HeadRef,
    LocalBranchRecord,
    PullRequestRef,
    PullRequestStatus,
    UpdateState,
)
from .repository import RepositorySession  # noqa: F401
from .service import PullRequestService  # noqa: F401

__all__ = [
    "BaseRef",
    "CheckoutState",
    "ConfigMarker",
    "DivergenceState",
    "HeadRef",
    "LocalBranchRecord",
    "PullRequestRef",
    "PullRequestService",
    "PullRequestStatus",
    "RepositorySession",
    "UpdateState",
    "__version__",
]
