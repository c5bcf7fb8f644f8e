"""Экспорт метрик в текстовом формате Prometheus."""
from __future__ import annotations

from fastapi import APIRouter, Response

from relay.core.metrics import render_latest

router = APIRouter()


@router.get("/metrics")
def metrics() -> Response:
    payload, content_type = render_latest()
    return Response(content=payload, media_type=content_type)
