"""Кэш с ограниченным временем жизни и объединением параллельных запросов по ключу."""
from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, TypeVar

from relay.core.logger import logger

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class Memoizer:
    """Потокобезопасный memoize-кэш.

    Для каждого ключа одновременно выполняется не более одного вызова
    загрузчика: остальные вызывающие ждут его результат. Успешные значения
    живут ``ttl`` секунд, ошибки не кэшируются. Просроченные записи
    удаляются не чаще одного раза в ``cleanup_interval`` секунд.
    """

    def __init__(
        self,
        ttl: float,
        cleanup_interval: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl
        self._cleanup_interval = cleanup_interval
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, _Entry[Any]] = {}
        self._in_flight: Dict[Hashable, Future] = {}
        self._last_cleanup = clock()

    def call(self, key: Hashable, loader: Callable[[], T]) -> T:
        with self._lock:
            now = self._clock()
            self._purge_expired(now)

            entry = self._entries.get(key)
            if entry is not None and entry.expires_at > now:
                return entry.value

            future = self._in_flight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._in_flight[key] = future

        if not owner:
            return future.result()

        try:
            value = loader()
        except BaseException as exc:
            with self._lock:
                self._in_flight.pop(key, None)
            future.set_exception(exc)
            raise

        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=self._clock() + self._ttl)
            self._in_flight.pop(key, None)
        future.set_result(value)
        return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return
        expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired:
            del self._entries[key]
        self._last_cleanup = now
        if expired:
            logger.debug("Memoizer: удалено %d просроченных записей", len(expired))


__all__ = ["Memoizer"]
