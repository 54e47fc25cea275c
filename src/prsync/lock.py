from __future__ import annotations

import asyncio
import getpass
import os
import time
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, FrozenSet

from .errors import LockTimeoutError

LOCK_FILENAME = "prsync.lock"

# Git dirs whose lock is held by the current task (makes nested workflows reentrant)
_held: ContextVar[FrozenSet[str]] = ContextVar("prsync_held_locks", default=frozenset())

# asyncio.Lock per git dir, per event loop; entries of closed loops are pruned
_process_locks: Dict[asyncio.AbstractEventLoop, Dict[str, asyncio.Lock]] = {}


class AdvisoryLock:
    """Simple file-based advisory lock with TTL and timeout.

    Environment variables (optional):
    - PRSYNC_LOCK_TTL: seconds to consider a lock stale
    - PRSYNC_LOCK_POLL: polling interval in seconds while waiting
    """

    def __init__(self, path: Path, *, ttl: int | None = None, timeout: float | None = None, force_break: bool = False):
        self.path = Path(path)
        self.ttl = ttl if ttl is not None else int(os.getenv("PRSYNC_LOCK_TTL", "600"))
        self.poll = float(os.getenv("PRSYNC_LOCK_POLL", "0.1"))
        self.timeout = timeout
        self.force_break = force_break
        self.acquired = False

    def _is_stale(self) -> bool:
        try:
            mtime = self.path.stat().st_mtime
        except FileNotFoundError:
            return False
        return (time.time() - mtime) > self.ttl

    def _write_pid(self) -> None:
        """Write lock file with metadata for debugging."""
        try:
            user = getpass.getuser()
        except Exception:
            user = "unknown"
        timestamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        self.path.write_text(
            f"pid={os.getpid()} time={timestamp} user={user} cwd={os.getcwd()}\n",
            encoding="utf-8",
        )

    def get_lock_info(self) -> dict | None:
        """Get lock metadata (pid, time, user, cwd), or None if the lock is free."""
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except (FileNotFoundError, OSError):
            return None
        info: dict = {}
        for part in content.split():
            if "=" in part:
                key, value = part.split("=", 1)
                info[key] = value
        if "pid" in info:
            try:
                info["pid"] = int(info["pid"])
            except ValueError:
                pass
        return info or None

    def try_acquire(self) -> bool:
        """Make one attempt, breaking a stale or forced lock first."""
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
                os.close(fd)
                self._write_pid()
                self.acquired = True
                return True
            except FileExistsError:
                # When ttl<=0 treat as never stale
                if self.force_break or (self.ttl > 0 and self._is_stale()):
                    self.force_break = False
                    try:
                        self.path.unlink()
                    except FileNotFoundError:
                        pass
                    continue
                return False

    def acquire(self) -> bool:
        start = time.time()
        while True:
            if self.try_acquire():
                return True
            if self.timeout == 0:
                return False
            if self.timeout is not None and (time.time() - start) >= self.timeout:
                return False
            time.sleep(self.poll)

    def release(self) -> None:
        if self.acquired:
            try:
                self.path.unlink()
            except FileNotFoundError:
                pass
            self.acquired = False

    def __enter__(self):
        if not self.acquire():
            raise LockTimeoutError(f"Failed to acquire lock within timeout: {self.path}")
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def _process_lock(key: str) -> asyncio.Lock:
    for closed in [loop for loop in _process_locks if loop.is_closed()]:
        del _process_locks[closed]
    locks = _process_locks.setdefault(asyncio.get_running_loop(), {})
    lock = locks.get(key)
    if lock is None:
        lock = locks[key] = asyncio.Lock()
    return lock


@asynccontextmanager
async def repository_lock(git_dir: Path, *, timeout: float, ttl: int) -> AsyncIterator[None]:
    """Hold exclusive access to a repository for one git-mutating workflow.

    Exclusion is two-level: an asyncio.Lock serializes tasks in this process
    and an AdvisoryLock file in the git dir serializes processes. Re-entering
    from a task that already holds the lock is a no-op.

    Raises:
        LockTimeoutError: If either level is not acquired within ``timeout``
    """
    key = str(Path(git_dir).resolve())
    held = _held.get()
    if key in held:
        yield
        return

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    lock = _process_lock(key)
    if timeout <= 0:
        if lock.locked():
            raise LockTimeoutError(f"Repository is busy: {key}")
        await lock.acquire()
    else:
        try:
            await asyncio.wait_for(lock.acquire(), timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(f"Timed out waiting for repository lock: {key}") from None

    try:
        file_lock = AdvisoryLock(Path(key) / LOCK_FILENAME, ttl=ttl)
        while not file_lock.try_acquire():
            if loop.time() >= deadline:
                info = file_lock.get_lock_info() or {}
                raise LockTimeoutError(
                    f"Repository lock {file_lock.path} held by pid {info.get('pid', '?')}"
                )
            await asyncio.sleep(file_lock.poll)

        token = _held.set(held | {key})
        try:
            yield
        finally:
            _held.reset(token)
            file_lock.release()
    finally:
        lock.release()
