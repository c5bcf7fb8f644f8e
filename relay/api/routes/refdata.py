"""Справочные данные для фильтров интерфейса."""
from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, status

from relay.core.config import settings
from relay.core.dependencies import get_refdata_cache, get_repository
from relay.core.logger import logger
from relay.services.memoize import Memoizer
from relay.services.store import EventRepository, StoreError

router = APIRouter(prefix="/v1/street-manager-relay")

REFDATA_CACHE_KEY = "refdata"


@router.get("/refdata")
async def get_refdata(
    repository: EventRepository = Depends(get_repository),
    cache: Memoizer = Depends(get_refdata_cache),
):
    try:
        refdata = await asyncio.to_thread(cache.call, REFDATA_CACHE_KEY, repository.ref_data)
    except StoreError as exc:
        logger.error("Ошибка получения справочных данных: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve reference data",
        ) from exc

    return {"refdata": refdata, "attribution": settings.attribution}
