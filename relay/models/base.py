"""Базовый класс декларативных моделей и общие типы колонок."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator


class Base(DeclarativeBase):
    pass


class ZonedDateTime(TypeDecorator):
    """Хранит момент времени строкой ISO 8601 вместе со смещением издателя.

    Наивные значения считаются заданными в UTC. Сравнивать такие колонки
    нужно через ``julianday()``: SQLite сам приводит смещение к UTC.
    """

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect) -> Optional[str]:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.isoformat()

    def process_result_value(self, value: Optional[str], dialect) -> Optional[datetime]:
        if value is None:
            return None
        parsed = datetime.fromisoformat(value)
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed


__all__ = ["Base", "ZonedDateTime"]
