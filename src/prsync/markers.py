"""Config markers linking local branches to pull requests.

A branch checked out from a fork carries ``branch.<name>.ghfvs-pr = <number>``
in the repository's local config. The key format is shared with other tools
and must not change.
"""

from __future__ import annotations

import asyncio
import re
import threading
from typing import Dict, List, Optional, Tuple

from .models import MARKER_SUFFIX, ConfigMarker, marker_key
from .observability import log_action, log_debug
from .repository import RepositorySession

MARKER_PATTERN = re.compile(r"^branch\.(?P<branch>.+)\." + re.escape(MARKER_SUFFIX) + r"$")
_SCAN_PATTERN = r"^branch\..*\." + re.escape(MARKER_SUFFIX) + r"$"


def parse_marker(key: str, value: str) -> Optional[ConfigMarker]:
    """ConfigMarker for a config entry, or None if it is not a valid marker."""
    match = MARKER_PATTERN.match(key)
    if not match or not match.group("branch").strip():
        return None
    value = value.strip()
    if not value.isdigit():
        log_debug("ignoring malformed marker", key=key, value=value)
        return None
    number = int(value)
    if number <= 0:
        return None
    return ConfigMarker(branch=match.group("branch"), pr_number=number)


def scan_markers(session: RepositorySession) -> List[ConfigMarker]:
    """All markers in config order (one config scan)."""
    markers = []
    for key, value in session.config_scan(_SCAN_PATTERN):
        marker = parse_marker(key, value)
        if marker is not None:
            markers.append(marker)
    return markers


class MarkerIndex:
    """Pull request number -> branch names, per repository.

    Each entry is keyed by the config file's (mtime, size) stamp and rebuilt
    on the next lookup after any change, including edits made by other
    processes.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, Tuple[Optional[Tuple[int, int]], Dict[int, List[str]]]] = {}
        self._lock = threading.Lock()

    def branches(self, session: RepositorySession, number: int) -> List[str]:
        key = str(session.config_path)
        stamp = session.config_stamp()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry[0] != stamp or stamp is None:
            index: Dict[int, List[str]] = {}
            for marker in scan_markers(session):
                index.setdefault(marker.pr_number, []).append(marker.branch)
            with self._lock:
                self._entries[key] = (stamp, index)
            log_debug("marker index rebuilt", config=key, entries=len(index))
        else:
            index = entry[1]
        return list(index.get(number, []))

    def invalidate(self, session: RepositorySession) -> None:
        with self._lock:
            self._entries.pop(str(session.config_path), None)


_index = MarkerIndex()


async def read_markers(session: RepositorySession) -> List[ConfigMarker]:
    return await asyncio.to_thread(scan_markers, session)


async def branches_for_pull_request(session: RepositorySession, number: int) -> List[str]:
    """Local branches marked with pull request ``number``, in config order."""
    return await asyncio.to_thread(_index.branches, session, number)


async def write_marker(session: RepositorySession, branch: str, number: int) -> ConfigMarker:
    """Record that ``branch`` was created for pull request ``number``."""
    marker = ConfigMarker(branch=branch, pr_number=number)
    try:
        await asyncio.to_thread(session.config_set, marker.key, marker.value)
    finally:
        _index.invalidate(session)
    log_action("marker.write", branch=branch, pr=number)
    return marker


async def clear_marker(session: RepositorySession) -> Optional[str]:
    """Remove the marker of the checked-out branch.

    A missing marker is not an error. Returns the branch whose marker was
    looked up, or None on a detached HEAD.
    """
    branch = await asyncio.to_thread(lambda: session.current_branch)
    if branch is None:
        log_debug("marker.clear skipped: detached HEAD")
        return None
    try:
        removed = await asyncio.to_thread(session.config_unset, marker_key(branch))
    finally:
        _index.invalidate(session)
    log_action("marker.clear", branch=branch, removed=removed)
    return branch
