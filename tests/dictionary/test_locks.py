"""字典级互斥锁的测试。"""

import threading

import pytest

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.exceptions import DictionaryLockedError
from app.packages.dictionary.core.locks import InMemoryLockBackend, dictionary_lock


def test_lock_is_released_after_block(lock_backend, dictionary_code):
    with dictionary_lock(dictionary_code):
        assert lock_backend.is_locked(dictionary_code)

    assert not lock_backend.is_locked(dictionary_code)


def test_lock_is_released_when_block_raises(lock_backend, dictionary_code):
    with pytest.raises(ValueError):
        with dictionary_lock(dictionary_code):
            raise ValueError("boom")

    assert not lock_backend.is_locked(dictionary_code)


def test_busy_dictionary_raises_locked_error(monkeypatch, lock_backend, dictionary_code):
    monkeypatch.setattr(get_settings(), "lock_wait_seconds", 0.05)
    handle = lock_backend.acquire(dictionary_code, wait_seconds=0, timeout_seconds=60)
    try:
        with pytest.raises(DictionaryLockedError) as exc_info:
            with dictionary_lock(dictionary_code):
                pass
    finally:
        lock_backend.release(handle)

    assert exc_info.value.status_code == 423


def test_different_dictionaries_do_not_block_each_other(monkeypatch, dictionary_code):
    monkeypatch.setattr(get_settings(), "lock_wait_seconds", 0.05)
    acquired = threading.Event()
    release = threading.Event()

    def _hold():
        with dictionary_lock(dictionary_code):
            acquired.set()
            release.wait(timeout=5)

    worker = threading.Thread(target=_hold)
    worker.start()
    try:
        assert acquired.wait(timeout=5)
        with dictionary_lock(f"{dictionary_code}-other"):
            pass
        with pytest.raises(DictionaryLockedError):
            with dictionary_lock(dictionary_code):
                pass
    finally:
        release.set()
        worker.join(timeout=5)


def test_in_memory_backend_times_out():
    backend = InMemoryLockBackend()
    first = backend.acquire("units", wait_seconds=0, timeout_seconds=60)

    assert first is not None
    assert backend.acquire("units", wait_seconds=0.01, timeout_seconds=60) is None
    backend.release(first)
    assert backend.acquire("units", wait_seconds=0, timeout_seconds=60) is not None
