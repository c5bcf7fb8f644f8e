"""Создание и базовая настройка FastAPI-приложения."""
from __future__ import annotations

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from relay import __version__
from relay.core.config import settings
from relay.core.database import make_engine, make_session_factory
from relay.core.logger import logger
from relay.core.metrics import setup_metrics
from relay.models import PromoterOrg
from relay.services.certificates import CachedCertManager, CertManager
from relay.services.memoize import Memoizer
from relay.services.promoters import load_promoter_orgs
from relay.services.store import EventRepository

_SECRET_MARKERS = ("password", "secret", "token", "key", "dsn")


def _setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origin_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )


def _setup_exception_handlers(app: FastAPI) -> None:
    """Все ошибки отдаются клиенту в виде ``{"error": "..."}``."""

    @app.exception_handler(HTTPException)
    async def _http_error(_request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in exc.errors()
        ]
        return JSONResponse(status_code=400, content={"error": "; ".join(messages) or "Некорректный запрос"})

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Необработанная ошибка при обработке %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Внутренняя ошибка сервера"})


def _mask(name: str, value: Any) -> Any:
    if any(marker in name.lower() for marker in _SECRET_MARKERS) and value:
        return "***"
    return value


def _log_startup_banner() -> None:
    """Вывести в лог версию и сводку настроек (секреты маскируются)."""

    logger.info("Street Manager Relay v%s", __version__)
    for name, value in sorted(settings.model_dump().items()):
        logger.info("  %s = %r", name, _mask(name, value))


def create_app(
    db_path: Optional[str | Path] = None,
    *,
    cert_manager: Optional[CertManager] = None,
    promoter_orgs: Optional[Mapping[str, PromoterOrg]] = None,
) -> FastAPI:
    logger.info("Создание экземпляра FastAPI приложения")
    app = FastAPI(title=settings.app_title, version=__version__)
    _setup_cors(app)
    setup_metrics(app)
    _setup_exception_handlers(app)

    engine = make_engine(db_path if db_path is not None else settings.db_file_path)
    repository = EventRepository(engine, make_session_factory(engine))

    if cert_manager is None:
        cert_manager = CachedCertManager.from_hours(
            settings.cert_cache_ttl_hours,
            settings.cert_cache_cleanup_hours,
            settings.http_timeout,
        )
    if promoter_orgs is None:
        promoter_orgs = load_promoter_orgs(settings.promoter_orgs_path)

    app.state.repository = repository
    app.state.cert_manager = cert_manager
    app.state.refdata_cache = Memoizer(
        ttl=settings.refdata_cache_minutes * 60,
        cleanup_interval=settings.refdata_cache_minutes * 60,
    )
    app.state.promoter_orgs = promoter_orgs
    app.state.cleanup_state = {
        "last_run": None,  # type: Optional[datetime]
        "deleted_events": 0,
        "error": None,
    }
    app.state.cleanup_lock = asyncio.Lock()
    app.state.background_tasks: list[asyncio.Task] = []
    app.state.retention_days = settings.completed_retention_days
    app.state.cleanup_interval_hours = settings.cleanup_interval_hours

    _log_startup_banner()
    logger.info(
        "Приложение подготовлено: база=%s, организаций=%d, очистка завершённых=%s",
        engine.url.database,
        len(promoter_orgs),
        f"{settings.completed_retention_days} дней" if settings.completed_retention_days else "выключена",
    )
    return app


__all__ = ["create_app"]
