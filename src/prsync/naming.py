"""Default local branch names for pull requests."""

from __future__ import annotations

import asyncio
import re
from typing import Iterable, Set

from .repository import RepositorySession

_INVALID_BRANCH_CHARS = re.compile(r"[^0-9A-Za-z\-]")
_HYPHEN_RUNS = re.compile(r"-{2,}")

BRANCH_PREFIX = "pr/"


def safe_branch_name(title: str) -> str:
    """Reduce a pull request title to lower-case ``[0-9a-z-]``.

    >>> safe_branch_name("Fix!!  bug--now")
    'fix-bug-now'
    """
    name = _INVALID_BRANCH_CHARS.sub("-", title or "")
    name = _HYPHEN_RUNS.sub("-", name)
    return name.strip("-").lower()


def initial_branch_name(number: int, title: str) -> str:
    safe = safe_branch_name(title)
    return f"{BRANCH_PREFIX}{number}-{safe}" if safe else f"{BRANCH_PREFIX}{number}"


def unique_branch_name(initial: str, existing: Iterable[str]) -> str:
    """``initial``, or ``initial-2``, ``initial-3``... whichever is free first."""
    taken: Set[str] = set(existing)
    current = initial
    index = 2
    while current in taken:
        current = f"{initial}-{index}"
        index += 1
    return current


async def default_local_branch_name(session: RepositorySession, number: int, title: str) -> str:
    """Name to use when checking out pull request ``number`` for the first time."""
    existing = await asyncio.to_thread(session.branch_names)
    return unique_branch_name(initial_branch_name(number, title), existing)
