from __future__ import annotations

import pytest

from prsync.templates import TEMPLATE_PATHS, find_template, get_pull_request_template


def test_no_template(tmp_path):
    assert find_template(tmp_path) is None


def test_root_markdown_wins(tmp_path):
    (tmp_path / ".github").mkdir()
    (tmp_path / ".github" / "PULL_REQUEST_TEMPLATE.md").write_text("github dir")
    (tmp_path / "PULL_REQUEST_TEMPLATE.md").write_text("root md")
    assert find_template(tmp_path) == "root md"


@pytest.mark.parametrize("relative", TEMPLATE_PATHS)
def test_each_location_found(tmp_path, relative):
    path = tmp_path / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"from {relative}", encoding="utf-8")
    assert find_template(tmp_path) == f"from {relative}"


def test_unreadable_candidate_is_skipped(tmp_path):
    (tmp_path / "PULL_REQUEST_TEMPLATE.md").write_bytes(b"\xff\xfe\x00bad")
    (tmp_path / "PULL_REQUEST_TEMPLATE").write_text("plain")
    assert find_template(tmp_path) == "plain"


def test_directory_named_like_template_ignored(tmp_path):
    (tmp_path / "PULL_REQUEST_TEMPLATE.md").mkdir()
    assert find_template(tmp_path) is None


@pytest.mark.anyio
async def test_session_template(session, local_repo):
    (local_repo / "PULL_REQUEST_TEMPLATE.md").write_text("## Summary\n", encoding="utf-8")
    assert await get_pull_request_template(session) == "## Summary\n"
