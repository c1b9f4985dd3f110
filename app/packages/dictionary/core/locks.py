"""字典级互斥锁：导入、撤销、重做按 ``dictionary_code`` 串行执行。

多实例部署时使用 Redis 锁保证跨进程互斥；Redis 不可用（或显式配置为 memory）时
回退到进程内的锁注册表。读操作不经过这里。
"""

from __future__ import annotations

import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from redis.exceptions import LockError

from app.packages.dictionary.core.config import get_settings
from app.packages.dictionary.core.exceptions import DictionaryLockedError
from app.packages.dictionary.core.logger import bind_dictionary_code, logger


class LockBackend:
    """锁后端基类，定义获取与释放接口。"""

    name = "base"

    def acquire(self, key: str, *, wait_seconds: float, timeout_seconds: float) -> Optional[object]:  # pragma: no cover - interface definition
        raise NotImplementedError

    def release(self, handle: object) -> None:  # pragma: no cover
        raise NotImplementedError

    def close(self) -> None:
        """释放后端持有的连接，默认无需处理。"""


class RedisLockBackend(LockBackend):
    """基于 Redis 的锁后端，锁带有过期时间，避免进程崩溃后永久占用。"""

    name = "redis"

    def __init__(self, url: str) -> None:
        self._client = redis.Redis.from_url(url, decode_responses=True)
        self._client.ping()

    def acquire(self, key: str, *, wait_seconds: float, timeout_seconds: float) -> Optional[object]:
        lock = self._client.lock(
            self._build_key(key),
            timeout=timeout_seconds,
            blocking=True,
            blocking_timeout=wait_seconds,
        )
        if not lock.acquire():
            return None
        return lock

    def release(self, handle: object) -> None:
        try:
            handle.release()
        except LockError:
            # 锁已过期被自动释放
            logger.warning("Dictionary lock expired before release")

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _build_key(key: str) -> str:
        return f"dictionary-lock:{key}"


class InMemoryLockBackend(LockBackend):
    """进程内锁注册表，用于测试或缺少 Redis 的单实例部署。"""

    name = "memory"

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def acquire(self, key: str, *, wait_seconds: float, timeout_seconds: float) -> Optional[object]:
        with self._registry_lock:
            lock = self._locks.setdefault(key, threading.Lock())
        if not lock.acquire(timeout=max(wait_seconds, 0)):
            return None
        return lock

    def release(self, handle: object) -> None:
        handle.release()

    def is_locked(self, key: str) -> bool:
        with self._registry_lock:
            lock = self._locks.get(key)
        return lock is not None and lock.locked()


_backend: Optional[LockBackend] = None
_backend_guard = threading.Lock()


def _create_backend() -> LockBackend:
    settings = get_settings()
    mode = (settings.lock_backend or "auto").strip().lower()
    if mode == "memory":
        return InMemoryLockBackend()
    if mode == "redis":
        return RedisLockBackend(settings.redis_url)
    try:
        backend = RedisLockBackend(settings.redis_url)
        logger.info("Dictionary locks backed by Redis at %s", settings.redis_url)
        return backend
    except Exception as exc:  # pragma: no cover - fallback path
        logger.warning("Redis unavailable (%s), falling back to in-process dictionary locks", exc)
        return InMemoryLockBackend()


def get_lock_backend() -> LockBackend:
    global _backend
    if _backend is not None:
        return _backend
    with _backend_guard:
        if _backend is None:
            _backend = _create_backend()
    return _backend


def set_lock_backend(backend: Optional[LockBackend]) -> None:
    """替换当前锁后端（测试使用）；传入 ``None`` 时下次访问重新按配置创建。"""
    global _backend
    _backend = backend


@contextmanager
def dictionary_lock(dictionary_code: str) -> Iterator[None]:
    """在整个变更操作期间持有字典级互斥锁，超时未获取则抛出 ``DictionaryLockedError``。"""
    settings = get_settings()
    backend = get_lock_backend()
    started = time.monotonic()
    handle = backend.acquire(
        dictionary_code,
        wait_seconds=settings.lock_wait_seconds,
        timeout_seconds=settings.lock_timeout_seconds,
    )
    if handle is None:
        logger.warning("Timed out waiting for dictionary lock %s", dictionary_code)
        raise DictionaryLockedError(dictionary_code)
    logger.debug(
        "Acquired %s lock for dictionary %s after %.3fs",
        backend.name,
        dictionary_code,
        time.monotonic() - started,
    )
    try:
        with bind_dictionary_code(dictionary_code):
            yield
    finally:
        backend.release(handle)


def close_lock_backend() -> None:
    """应用关闭时释放锁后端连接。"""
    global _backend
    with _backend_guard:
        backend, _backend = _backend, None
    if backend is not None:
        backend.close()
