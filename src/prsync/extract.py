"""Materialize file contents at specific commits for diff display.

Nothing here touches the working tree or HEAD: contents are read straight
from the object database and written under the extract cache directory.
"""

from __future__ import annotations

import asyncio
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple

from .models import PullRequestRef
from .observability import log_debug, timeit
from .repository import RepositorySession
from .transport import GitTransport


def normalize_repo_path(path: str) -> str:
    """Validate a repository-relative path and return it '/'-separated.

    Raises:
        ValueError: For empty, absolute or parent-escaping paths
    """
    if not path or not path.strip():
        raise ValueError("File path is empty")
    value = path.replace("\\", "/")
    if value.startswith("/") or (len(value) > 1 and value[1] == ":"):
        raise ValueError(f"File path must be relative to the repository: {path}")
    parts = [p for p in PurePosixPath(value).parts if p not in ("", ".")]
    if not parts or ".." in parts:
        raise ValueError(f"File path escapes the repository: {path}")
    return "/".join(parts)


def cache_root(session: RepositorySession) -> Path:
    configured = session.config.extract.cache_dir
    if configured:
        return Path(configured).expanduser()
    return Path(tempfile.gettempdir()) / "prsync-extract"


def _materialize(session: RepositorySession, sha: str, path: str) -> Optional[Path]:
    data = session.read_blob(sha, path)
    if data is None:
        log_debug("file absent at commit", sha=sha, path=path)
        return None
    target = cache_root(session).joinpath(sha, *PurePosixPath(path).parts)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)
    return target


async def read_file_at(session: RepositorySession, sha: str, path: str) -> Optional[bytes]:
    """Contents of ``path`` at ``sha`` without fetching; None when absent.

    Raises:
        FileExtractionError: If ``sha`` is not in the local object database
    """
    return await asyncio.to_thread(session.read_blob, sha, normalize_repo_path(path))


async def extract_file(session: RepositorySession, sha: str, path: str) -> Optional[Path]:
    """Fetch origin, then write ``path`` at ``sha`` to the extract cache.

    Returns the written file, ``<cache>/<sha>/<path>``, or None when the
    path does not exist at that commit.

    Raises:
        FileExtractionError: If ``sha`` is unknown after fetching
    """
    path = normalize_repo_path(path)
    async with session.exclusive():
        with timeit("extract.file", sha=sha, path=path) as info:
            await GitTransport(session).fetch(session.origin_remote)
            result = await asyncio.to_thread(_materialize, session, sha, path)
            info["found"] = result is not None
    return result


async def extract_diff_files(
    session: RepositorySession,
    pr: PullRequestRef,
    path: str,
) -> Tuple[Optional[Path], Optional[Path]]:
    """(base version, head version) of ``path`` for ``pr`` after one fetch."""
    path = normalize_repo_path(path)
    async with session.exclusive():
        with timeit("extract.diff", pr=pr.number, path=path) as info:
            await GitTransport(session).fetch(session.origin_remote)
            left = await asyncio.to_thread(_materialize, session, pr.base.sha, path)
            right = await asyncio.to_thread(_materialize, session, pr.head.sha, path)
            info.update(left=left is not None, right=right is not None)
    return left, right
