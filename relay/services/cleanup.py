"""Удаление завершённых событий: разовый запуск и фоновая очистка."""
from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import FastAPI

from relay.core.logger import logger
from relay.services.store import EventRepository

DRY_RUN_PREVIEW = 10


def delete_completed(
    repository: EventRepository,
    days: int,
    dry_run: bool = False,
    now: Optional[datetime] = None,
) -> List[int]:
    """Удаляет завершённые события, окончившиеся более ``days`` дней назад.

    В режиме ``dry_run`` ничего не удаляет и только возвращает найденные id.
    """

    logger.info("Поиск завершённых событий старше %d дней", days)
    ids = repository.completed_event_ids(days, now=now)

    if dry_run:
        logger.info(
            "[DRY RUN] Будет удалено %d завершённых событий вместе с записями индекса",
            len(ids),
        )
        if len(ids) > DRY_RUN_PREVIEW:
            logger.info("[DRY RUN] id событий (первые %d): %s", DRY_RUN_PREVIEW, ids[:DRY_RUN_PREVIEW])
        elif ids:
            logger.info("[DRY RUN] id событий: %s", ids)
        return ids

    logger.info("Найдено %d завершённых событий старше %d дней", len(ids), days)
    deleted = repository.delete_events(ids)
    logger.info("Удалено %d завершённых событий и записей индекса", deleted)
    return ids


async def perform_cleanup(repository: EventRepository, retention_days: int, state: dict) -> None:
    """Запускает удаление в отдельном потоке и обновляет state."""

    started_at = datetime.now(timezone.utc)
    logger.info("Очистка: старт (хранение завершённых событий=%d дней)", retention_days)
    try:
        ids = await asyncio.to_thread(
            delete_completed, repository, retention_days, False, started_at
        )
        state.update(
            {
                "last_run": started_at,
                "deleted_events": len(ids),
                "error": None,
            }
        )
        logger.info("Очистка завершена: удалено %d событий", len(ids))
    except Exception as exc:
        state.update({"last_run": started_at, "error": str(exc)})
        logger.exception("Очистка завершилась с ошибкой")


async def cleanup_loop(app: FastAPI, interval_hours: float) -> None:
    repository = app.state.repository
    cleanup_state = app.state.cleanup_state
    lock = app.state.cleanup_lock
    interval_hours = max(interval_hours, 1.0)
    interval_seconds = interval_hours * 3600
    while True:
        async with lock:
            logger.info("Фоновая очистка: запуск цикла")
            await perform_cleanup(repository, app.state.retention_days, cleanup_state)
        try:
            await asyncio.sleep(interval_seconds)
        except asyncio.CancelledError:
            logger.warning("Фоновая очистка остановлена по CancelledError")
            break


__all__ = ["delete_completed", "cleanup_loop", "perform_cleanup"]
