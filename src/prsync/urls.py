"""Repository URL normalization.

Clone URLs arrive in many spellings (https, ssh, scp-like, local paths). Two
URLs refer to the same repository when host, owner and name match, ignoring
case, credentials, a ``.git`` suffix and trailing slashes.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Optional

_SCP_LIKE = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):(?P<path>[^/].*)$")
_WINDOWS_DRIVE = re.compile(r"^[A-Za-z]:[\\/]")


def _strip_repo_suffix(value: str) -> str:
    """Strip .git suffix and trailing slashes from URL."""
    value = value.strip().rstrip("/")
    if value.endswith(".git"):
        value = value[:-4]
    return value.rstrip("/")


@dataclass(frozen=True)
class RepositoryUrl:
    """A clone URL reduced to the parts that identify a repository.

    Attributes:
        host: Host name for network URLs; the parent directory of the owner
            directory for local paths
        owner: Owning user or organization (last-but-one path segment), case kept
        name: Repository name without ``.git``, case kept
        original: The URL as given
    """
    host: str
    owner: str
    name: str
    original: str = ""

    @classmethod
    def parse(cls, url: str) -> "RepositoryUrl":
        """Parse a clone URL.

        Handles various formats:
        - https://github.com/org/repo.git -> (github.com, org, repo)
        - ssh://git@github.com/org/repo -> (github.com, org, repo)
        - git@github.com:org/repo.git -> (github.com, org, repo)
        - file:///srv/git/org/repo.git -> (/srv/git, org, repo)
        - /srv/git/org/repo.git -> (/srv/git, org, repo)

        Raises:
            ValueError: If no owner/name pair can be extracted
        """
        if not url or not url.strip():
            raise ValueError("Repository URL is empty")

        raw = url.strip()
        value = _strip_repo_suffix(raw.replace("\\", "/") if _WINDOWS_DRIVE.match(raw) else raw)

        if "://" in value:
            scheme, rest = value.split("://", 1)
            if scheme.lower() == "file":
                host, path = _split_local(rest)
            else:
                authority, _, path = rest.partition("/")
                host = authority.rsplit("@", 1)[-1].split(":", 1)[0]
        elif _WINDOWS_DRIVE.match(value) or value.startswith(("/", ".", "~")):
            host, path = _split_local(os.path.expanduser(value))
        else:
            match = _SCP_LIKE.match(value)
            if not match:
                raise ValueError(f"Unrecognized repository URL: {url}")
            host, path = match.group("host"), match.group("path")

        segments = [s for s in path.split("/") if s]
        if len(segments) < 2:
            raise ValueError(f"Repository URL has no owner/name: {url}")
        owner, name = segments[-2], _strip_repo_suffix(segments[-1])
        if host and not _is_local_host(host):
            # Nested namespaces (group/subgroup/repo) stay part of the host key
            prefix = "/".join(segments[:-2])
            host = f"{host}/{prefix}" if prefix else host
        return cls(host=host.lower(), owner=owner, name=name, original=raw)

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    def to_https(self) -> str:
        """Render as an https clone URL (network URLs only)."""
        if _is_local_host(self.host):
            return self.original
        return f"https://{self.host}/{self.owner}/{self.name}"

    def _identity(self) -> tuple[str, str, str]:
        return self.host, self.owner.lower(), self.name.lower()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositoryUrl):
            return NotImplemented
        return self._identity() == other._identity()

    def __hash__(self) -> int:
        return hash(self._identity())


def _split_local(path: str) -> tuple[str, str]:
    """Split a local path into (directory holding the owner dir, 'owner/name')."""
    posix = PurePosixPath(os.path.normpath(path).replace("\\", "/"))
    parts = posix.parts
    if len(parts) < 2:
        return "", str(posix)
    host = str(PurePosixPath(*parts[:-2])) if len(parts) > 2 else "/"
    return f"local:{host}", "/".join(parts[-2:])


def _is_local_host(host: str) -> bool:
    return host.startswith("local:")


def same_repository(first: Optional[str], second: Optional[str]) -> bool:
    """True when both URLs parse and identify the same repository."""
    if not first or not second:
        return False
    try:
        return RepositoryUrl.parse(first) == RepositoryUrl.parse(second)
    except ValueError:
        return False


def is_http_url(url: str) -> bool:
    return url.lower().startswith(("http://", "https://"))


def is_local_url(url: str) -> bool:
    value = url.strip()
    return (
        value.lower().startswith("file://")
        or value.startswith(("/", ".", "~"))
        or bool(_WINDOWS_DRIVE.match(value))
    )
