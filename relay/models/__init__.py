"""Инициализация моделей проекта."""
from .base import Base
from .bbox import BBox, BBoxError
from .event import Event
from .facets import FACET_NAMES, Facets, RefData, TemporalFilters
from .promoter import PromoterOrg
from .rtree import events_rtree

__all__ = [
    "Base",
    "BBox",
    "BBoxError",
    "Event",
    "FACET_NAMES",
    "Facets",
    "PromoterOrg",
    "RefData",
    "TemporalFilters",
    "events_rtree",
]
