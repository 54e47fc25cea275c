from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path

import pytest

from prsync.errors import LockTimeoutError
from prsync.lock import LOCK_FILENAME, AdvisoryLock, repository_lock


def test_lock_acquire_release(tmp_path: Path):
    p = tmp_path / ".t.lock"
    with AdvisoryLock(p, timeout=1):
        assert p.exists()
        info = AdvisoryLock(p).get_lock_info()
        assert info["pid"] == os.getpid()
    assert not p.exists()


def test_lock_timeout_then_force_break(tmp_path: Path):
    p = tmp_path / ".t.lock"
    l1 = AdvisoryLock(p, timeout=0, ttl=1)
    assert l1.acquire() is True
    try:
        l2 = AdvisoryLock(p, timeout=0.2, ttl=0)
        assert l2.acquire() is False
        l3 = AdvisoryLock(p, timeout=0, ttl=0, force_break=True)
        assert l3.acquire() is True
        l3.release()
    finally:
        l1.release()


def test_stale_lock_is_broken(tmp_path: Path):
    p = tmp_path / ".t.lock"
    p.write_text("pid=999999 time=old user=x cwd=/\n")
    old = time.time() - 120
    os.utime(p, (old, old))

    lock = AdvisoryLock(p, timeout=0, ttl=60)
    assert lock.acquire() is True
    lock.release()


def test_context_manager_raises_on_timeout(tmp_path: Path):
    p = tmp_path / ".t.lock"
    holder = AdvisoryLock(p, timeout=0, ttl=0)
    assert holder.acquire()
    try:
        with pytest.raises(LockTimeoutError):
            with AdvisoryLock(p, timeout=0, ttl=0):
                pass
    finally:
        holder.release()


@pytest.mark.anyio
async def test_repository_lock_serializes_tasks(tmp_path: Path):
    order = []

    async def worker(name: str):
        async with repository_lock(tmp_path, timeout=5, ttl=60):
            order.append(f"{name}-in")
            await asyncio.sleep(0.05)
            order.append(f"{name}-out")

    await asyncio.gather(worker("a"), worker("b"))

    assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
    assert not (tmp_path / LOCK_FILENAME).exists()


@pytest.mark.anyio
async def test_repository_lock_is_reentrant_within_task(tmp_path: Path):
    async with repository_lock(tmp_path, timeout=1, ttl=60):
        async with repository_lock(tmp_path, timeout=1, ttl=60):
            assert (tmp_path / LOCK_FILENAME).exists()
        # Inner exit must not release the outer hold
        assert (tmp_path / LOCK_FILENAME).exists()
    assert not (tmp_path / LOCK_FILENAME).exists()


@pytest.mark.anyio
async def test_repository_lock_times_out_on_other_process(tmp_path: Path):
    other = AdvisoryLock(tmp_path / LOCK_FILENAME, ttl=0)
    assert other.try_acquire()
    try:
        with pytest.raises(LockTimeoutError, match=str(os.getpid())):
            async with repository_lock(tmp_path, timeout=0.2, ttl=0):
                pass
    finally:
        other.release()


@pytest.mark.anyio
async def test_repository_lock_released_on_error(tmp_path: Path):
    with pytest.raises(RuntimeError):
        async with repository_lock(tmp_path, timeout=1, ttl=60):
            raise RuntimeError("boom")
    async with repository_lock(tmp_path, timeout=0, ttl=60):
        pass


def test_locks_of_closed_loops_are_dropped(tmp_path: Path):
    from prsync import lock as lock_module

    async def hold():
        async with repository_lock(tmp_path, timeout=1, ttl=60):
            pass

    for _ in range(30):
        asyncio.run(hold())

    # Only the most recently closed loop can still be present
    closed = [loop for loop in lock_module._process_locks if loop.is_closed()]
    assert len(closed) <= 1
    assert len(lock_module._process_locks) <= 2
