"""Общие зависимости FastAPI."""
from __future__ import annotations

from typing import Mapping

from fastapi import Request

from relay.models import PromoterOrg
from relay.services.certificates import CertManager
from relay.services.memoize import Memoizer
from relay.services.store import EventRepository


def get_repository(request: Request) -> EventRepository:
    """Возвращает репозиторий событий из состояния приложения."""

    return request.app.state.repository


def get_cert_manager(request: Request) -> CertManager:
    return request.app.state.cert_manager


def get_refdata_cache(request: Request) -> Memoizer:
    return request.app.state.refdata_cache


def get_promoter_orgs(request: Request) -> Mapping[str, PromoterOrg]:
    return request.app.state.promoter_orgs


def get_cleanup_state(request: Request):
    return request.app.state.cleanup_state
