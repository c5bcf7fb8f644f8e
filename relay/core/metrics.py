"""Метрики Prometheus и middleware для учёта HTTP-запросов."""
from __future__ import annotations

import time

from fastapi import FastAPI, Request
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest

# Отдельный реестр, чтобы несколько экземпляров приложения в тестах не конфликтовали.
REGISTRY = CollectorRegistry(auto_describe=True)

HTTP_REQUESTS = Counter(
    "relay_http_requests_total",
    "HTTP-запросы по маршруту, методу и коду ответа",
    ["method", "route", "status"],
    registry=REGISTRY,
)
HTTP_LATENCY = Histogram(
    "relay_http_request_duration_seconds",
    "Время обработки HTTP-запроса",
    ["method", "route"],
    registry=REGISTRY,
)
NOTIFICATIONS = Counter(
    "relay_notifications_total",
    "Полученные конверты уведомлений по типу и результату",
    ["type", "outcome"],
    registry=REGISTRY,
)
SIGNATURE_REJECTIONS = Counter(
    "relay_signature_rejections_total",
    "Конверты, отклонённые из-за неверной подписи",
    registry=REGISTRY,
)

IGNORED_PATHS = frozenset({"/metrics", "/healthz"})


def _route_label(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or "unmatched"


def setup_metrics(app: FastAPI) -> None:
    """Подключает middleware, считающий запросы и их длительность."""

    @app.middleware("http")
    async def _collect_metrics(request: Request, call_next):
        if request.url.path in IGNORED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = _route_label(request)
            HTTP_REQUESTS.labels(request.method, route, str(status_code)).inc()
            HTTP_LATENCY.labels(request.method, route).observe(time.perf_counter() - started)


def render_latest() -> tuple[bytes, str]:
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


__all__ = [
    "HTTP_LATENCY",
    "HTTP_REQUESTS",
    "NOTIFICATIONS",
    "REGISTRY",
    "SIGNATURE_REJECTIONS",
    "render_latest",
    "setup_metrics",
]
