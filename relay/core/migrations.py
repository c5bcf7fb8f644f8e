"""Небольшие idempotent-миграции, выполняемые при старте приложения."""

from __future__ import annotations

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from relay.core.logger import logger
from relay.models import Base
from relay.models.rtree import CREATE_EVENTS_RTREE_SQL


def run_startup_migrations(engine: Engine) -> None:
    """Создаёт таблицу events и R-tree индекс, если их ещё нет."""

    inspector = inspect(engine)
    existing_tables = set(inspector.get_table_names())

    if "events" not in existing_tables:
        Base.metadata.create_all(engine)
        logger.info("Создана таблица events и её индексы")
    else:
        logger.info("Таблица events уже существует, схема не изменялась")

    with engine.begin() as conn:
        conn.execute(text(CREATE_EVENTS_RTREE_SQL))

    if "events_rtree" not in existing_tables:
        logger.info("Создан пространственный индекс events_rtree")


__all__ = ["run_startup_migrations"]
