"""Эндпоинт мониторинга состояния сервиса."""
from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from relay import __version__
from relay.core.dependencies import get_cleanup_state, get_repository
from relay.services.store import EventRepository

router = APIRouter()


def _serialize_cleanup_state(cleanup_state: Dict[str, Any], *, in_progress: bool) -> Dict[str, Any]:
    """Подготавливает словарь с состоянием очистки к выдаче через API."""

    last_run = cleanup_state.get("last_run")
    return {
        "last_run": last_run.isoformat() if isinstance(last_run, datetime) else None,
        "deleted_events": cleanup_state.get("deleted_events", 0),
        "error": cleanup_state.get("error"),
        "in_progress": in_progress,
    }


@router.get("/healthz")
async def healthz(
    request: Request,
    repository: EventRepository = Depends(get_repository),
    cleanup_state=Depends(get_cleanup_state),
):
    cleanup_lock = getattr(request.app.state, "cleanup_lock", None)
    in_progress = bool(cleanup_lock.locked()) if cleanup_lock is not None else False

    ok = await asyncio.to_thread(repository.ping)
    body = {
        "ok": ok,
        "version": __version__,
        "database": "ok" if ok else "unavailable",
        "retention_days": request.app.state.retention_days,
        "cleanup": _serialize_cleanup_state(cleanup_state, in_progress=in_progress),
    }
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=body,
    )
