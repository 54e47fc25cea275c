"""Exception hierarchy for pull request synchronization.

Local, recoverable conditions (an unreadable template, no branch found in a
best-effort listing) never raise; everything that mutates the repository or
talks to a remote raises one of these and keeps git's own message.
"""


class PrSyncError(Exception):
    """Base exception for prsync operations."""
    pass


class BranchNotFoundError(PrSyncError):
    """A pull request's associated branch has no local or remote-tracking ref."""
    pass


class TransportError(PrSyncError):
    """Fetch, push or pull against a remote failed."""
    pass


class GitOperationError(PrSyncError):
    """A local git mutation (checkout, branch, config) failed."""
    pass


class DirtyWorkingTreeError(PrSyncError):
    """Checkout was requested while the working tree has uncommitted changes."""
    pass


class NoTrackingBranchError(PrSyncError):
    """The current branch has no upstream to compare against."""
    pass


class FileExtractionError(PrSyncError):
    """The requested commit is not available in the local object database."""
    pass


class PullRequestCreationError(PrSyncError):
    """The remote service did not confirm pull request creation."""
    pass


class LockTimeoutError(PrSyncError, TimeoutError):
    """Another git-mutating operation holds the repository lock."""
    pass
