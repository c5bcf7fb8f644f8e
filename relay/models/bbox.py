"""Ограничивающий прямоугольник и разбор WKT/CSV-представлений."""
from __future__ import annotations

import math
from dataclasses import dataclass

import shapely.wkt
from shapely.errors import ShapelyError


class BBoxError(ValueError):
    """Некорректная геометрия или строка bbox."""


@dataclass(frozen=True)
class BBox:
    """Прямоугольник ``(min_x, max_x, min_y, max_y)``; всегда ``min ≤ max`` по обеим осям."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float

    def __post_init__(self) -> None:
        if self.min_x > self.max_x or self.min_y > self.max_y:
            raise BBoxError(
                f"Вырожденный bbox: min_x={self.min_x}, max_x={self.max_x}, "
                f"min_y={self.min_y}, max_y={self.max_y}"
            )

    @classmethod
    def from_corners(cls, x1: float, y1: float, x2: float, y2: float) -> "BBox":
        """Строит bbox по двум противоположным углам в любом порядке."""

        return cls(
            min_x=min(x1, x2),
            max_x=max(x1, x2),
            min_y=min(y1, y2),
            max_y=max(y1, y2),
        )

    def equals(self, other: "BBox", tolerance: float) -> bool:
        """Сравнивает каждую грань с абсолютным допуском."""

        return (
            abs(self.min_x - other.min_x) <= tolerance
            and abs(self.max_x - other.max_x) <= tolerance
            and abs(self.min_y - other.min_y) <= tolerance
            and abs(self.max_y - other.max_y) <= tolerance
        )


def bounding_box_from_wkt(wkt: str) -> BBox:
    """Вычисляет bbox по всем координатам WKT-геометрии; ось Z игнорируется."""

    if not wkt or not wkt.strip():
        raise BBoxError("Пустая WKT-строка")

    try:
        geometry = shapely.wkt.loads(wkt)
    except (ShapelyError, ValueError, TypeError) as exc:
        raise BBoxError(f"Не удалось разобрать WKT: {exc}") from exc

    if geometry.is_empty:
        raise BBoxError("WKT-геометрия не содержит координат")

    min_x, min_y, max_x, max_y = geometry.bounds
    return BBox(min_x=min_x, max_x=max_x, min_y=min_y, max_y=max_y)


def bounding_box_from_csv(raw: str | None) -> BBox:
    """Разбирает строку ``minX,minY,maxX,maxY``; перепутанные углы упорядочиваются."""

    parts = (raw or "").split(",")
    if len(parts) != 4:
        raise BBoxError("bbox должен содержать 4 значения через запятую")

    values: list[float] = []
    for part in parts:
        try:
            values.append(float(part.strip()))
        except ValueError as exc:
            raise BBoxError(f"Некорректное значение bbox '{part}': ожидалось число") from exc

    if not all(math.isfinite(value) for value in values):
        raise BBoxError("Значения bbox должны быть конечными числами")

    x1, y1, x2, y2 = values
    return BBox.from_corners(x1, y1, x2, y2)


__all__ = ["BBox", "BBoxError", "bounding_box_from_csv", "bounding_box_from_wkt"]
