"""Поиск событий по ограничивающему прямоугольнику и фасетам."""
from __future__ import annotations

import asyncio
from typing import List, Mapping, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from relay.core.config import settings
from relay.core.dependencies import get_promoter_orgs, get_repository
from relay.core.logger import logger
from relay.models import FACET_NAMES, BBoxError, Facets, PromoterOrg, TemporalFilters
from relay.models.bbox import bounding_box_from_csv
from relay.services.promoters import enrich_event
from relay.services.store import EventRepository, StoreError, event_payload

router = APIRouter(prefix="/v1/street-manager-relay")

MAX_DAYS_LIMIT = 3650


def expand_comma_separated(values: List[str]) -> List[str]:
    """``?a=X&a=Y`` и ``?a=X,Y`` дают одинаковый список ``["X", "Y"]``."""

    result: List[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part:
                result.append(part)
    return result


def parse_facets(request: Request) -> Facets:
    query = request.query_params
    return Facets(**{name: expand_comma_separated(query.getlist(name)) for name in FACET_NAMES})


@router.get("/search")
async def search_events(
    request: Request,
    bbox: Optional[str] = Query(default=None),
    max_days_ahead: Optional[int] = Query(default=None, ge=0, le=MAX_DAYS_LIMIT),
    max_days_behind: Optional[int] = Query(default=None, ge=0, le=MAX_DAYS_LIMIT),
    repository: EventRepository = Depends(get_repository),
    promoter_orgs: Mapping[str, PromoterOrg] = Depends(get_promoter_orgs),
):
    try:
        query_bbox = bounding_box_from_csv(bbox)
    except BBoxError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    facets = parse_facets(request)
    temporal = TemporalFilters(
        max_days_ahead=settings.default_max_days_ahead if max_days_ahead is None else max_days_ahead,
        max_days_behind=settings.default_max_days_behind if max_days_behind is None else max_days_behind,
    )

    try:
        events = await asyncio.to_thread(repository.search, query_bbox, facets, temporal)
    except StoreError as exc:
        logger.error("Ошибка поиска событий: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to search events",
        ) from exc

    return {
        "results": [enrich_event(event_payload(event), promoter_orgs) for event in events],
        "attribution": settings.attribution,
    }
