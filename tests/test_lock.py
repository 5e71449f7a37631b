import os
from pathlib import Path

import pytest

from wamcp.runtime import lock as lock_module
from wamcp.runtime.lock import LockHeldError, RunLock


def test_acquire_writes_own_pid(tmp_path: Path) -> None:
    path = tmp_path / "state" / ".whatsapp-mcp.lock"
    lock = RunLock(path)

    lock.acquire()

    assert lock.held
    assert path.read_text() == str(os.getpid())


def test_stale_lock_is_replaced(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    path.write_text("999999")
    monkeypatch.setattr(lock_module, "pid_alive", lambda pid: False)

    lock = RunLock(path, pid=4242)
    lock.acquire()

    assert lock.held
    assert path.read_text() == "4242"


def test_garbage_lock_is_treated_as_stale(tmp_path: Path) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    path.write_text("not-a-pid")

    lock = RunLock(path, pid=4242)
    lock.acquire()

    assert path.read_text() == "4242"


def test_live_owner_blocks_acquire(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    path.write_text("1234")
    monkeypatch.setattr(lock_module, "pid_alive", lambda pid: pid == 1234)

    lock = RunLock(path, pid=4242)
    with pytest.raises(LockHeldError) as excinfo:
        lock.acquire()

    assert excinfo.value.pid == 1234
    assert not lock.held
    assert path.read_text() == "1234"


def test_release_removes_own_lock(tmp_path: Path) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    lock = RunLock(path, pid=4242)
    lock.acquire()

    lock.release()
    lock.release()

    assert not lock.held
    assert not path.exists()


def test_release_leaves_foreign_lock(tmp_path: Path) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    lock = RunLock(path, pid=4242)
    lock.acquire()
    path.write_text("5555")

    lock.release()

    assert path.read_text() == "5555"


def test_release_without_acquire_is_noop(tmp_path: Path) -> None:
    path = tmp_path / ".whatsapp-mcp.lock"
    path.write_text("5555")

    RunLock(path, pid=4242).release()

    assert path.exists()
