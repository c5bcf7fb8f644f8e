"""Точка входа FastAPI-приложения."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Mapping, Optional

from fastapi import FastAPI

from relay.api.routes import health, metrics, refdata, search, sns
from relay.core.app import create_app
from relay.core.config import settings
from relay.core.logger import LOGGING_CONFIG, logger
from relay.core.migrations import run_startup_migrations
from relay.models import PromoterOrg
from relay.services.certificates import CertManager
from relay.services.cleanup import cleanup_loop, perform_cleanup


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл приложения: миграции, фоновая очистка и корректное завершение."""

    repository = app.state.repository
    run_startup_migrations(repository.engine)

    if app.state.retention_days > 0:
        # Первый запуск очистки делаем вручную, чтобы не ждать таймер
        async with app.state.cleanup_lock:
            logger.info("Запускаю первичную очистку завершённых событий")
            await perform_cleanup(repository, app.state.retention_days, app.state.cleanup_state)

        task = asyncio.create_task(
            cleanup_loop(app, app.state.cleanup_interval_hours),
            name="completed-cleanup",
        )
        app.state.background_tasks.append(task)
        logger.info("Запущена фоновая задача очистки завершённых событий")
    else:
        logger.info("Фоновая очистка завершённых событий выключена")

    try:
        yield
    finally:
        tasks = list(app.state.background_tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                logger.warning("Фоновая задача %s остановлена по сигналу отмены", task.get_name())
            except Exception:
                logger.exception("Фоновая задача %s завершилась с ошибкой", task.get_name())

        app.state.background_tasks.clear()
        repository.close()
        logger.info("Приложение остановлено")


def build_app(
    db_path: Optional[str | Path] = None,
    *,
    cert_manager: Optional[CertManager] = None,
    promoter_orgs: Optional[Mapping[str, PromoterOrg]] = None,
) -> FastAPI:
    """Собирает приложение со всеми маршрутами и жизненным циклом."""

    application = create_app(db_path, cert_manager=cert_manager, promoter_orgs=promoter_orgs)
    application.include_router(health.router)
    application.include_router(metrics.router)
    application.include_router(sns.router)
    application.include_router(search.router)
    application.include_router(refdata.router)
    application.router.lifespan_context = lifespan
    return application


@lru_cache(maxsize=1)
def get_app() -> FastAPI:
    """Приложение с настройками по умолчанию; собирается при первом обращении."""
    return build_app()


def __getattr__(name: str):
    # `uvicorn relay.main:app` получает приложение без сборки при импорте модуля
    if name == "app":
        return get_app()
    raise AttributeError(name)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        get_app(),
        host=settings.host,
        port=settings.port,
        log_config=LOGGING_CONFIG,
    )
