"""Фильтры поиска: фасеты, временное окно и справочные данные."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Dict, List, Tuple

RefData = Dict[str, Dict[str, int]]

# Имена фасетов совпадают с колонками таблицы events и параметрами запроса.
FACET_NAMES: Tuple[str, ...] = (
    "permit_status",
    "traffic_management_type_ref",
    "work_status_ref",
    "work_category_ref",
    "road_category",
    "highway_authority",
    "promoter_organisation",
)


@dataclass
class Facets:
    """Многозначные фильтры: ИЛИ внутри фасета, И между фасетами."""

    permit_status: List[str] = field(default_factory=list)
    traffic_management_type_ref: List[str] = field(default_factory=list)
    work_status_ref: List[str] = field(default_factory=list)
    work_category_ref: List[str] = field(default_factory=list)
    road_category: List[str] = field(default_factory=list)
    highway_authority: List[str] = field(default_factory=list)
    promoter_organisation: List[str] = field(default_factory=list)

    def active(self) -> Dict[str, List[str]]:
        """Только непустые фасеты."""

        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name)}


@dataclass(frozen=True)
class TemporalFilters:
    max_days_ahead: int = 7
    max_days_behind: int = 0

    def __post_init__(self) -> None:
        if self.max_days_ahead < 0 or self.max_days_behind < 0:
            raise ValueError("max_days_ahead и max_days_behind не могут быть отрицательными")


__all__ = ["FACET_NAMES", "Facets", "RefData", "TemporalFilters"]
