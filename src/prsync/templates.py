"""Pull request body templates kept in the repository."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

from .observability import log_debug
from .repository import RepositorySession

TEMPLATE_PATHS = (
    "PULL_REQUEST_TEMPLATE.md",
    "PULL_REQUEST_TEMPLATE",
    ".github/PULL_REQUEST_TEMPLATE.md",
    ".github/PULL_REQUEST_TEMPLATE",
)


def find_template(root: Path) -> Optional[str]:
    """Text of the first readable template under ``root``; None if there is none."""
    for relative in TEMPLATE_PATHS:
        path = root / relative
        if not path.is_file():
            continue
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log_debug("template unreadable", path=str(path), error=type(exc).__name__)
    return None


async def get_pull_request_template(session: RepositorySession) -> Optional[str]:
    return await asyncio.to_thread(find_template, session.path)
