"""Описание виртуальной таблицы R-tree для пространственного индекса событий."""
from __future__ import annotations

from sqlalchemy import Column, Float, Integer, MetaData, Table

# Отдельные метаданные: таблица создаётся через CREATE VIRTUAL TABLE, а не create_all.
rtree_metadata = MetaData()

events_rtree = Table(
    "events_rtree",
    rtree_metadata,
    Column("id", Integer, primary_key=True),
    Column("minx", Float),
    Column("maxx", Float),
    Column("miny", Float),
    Column("maxy", Float),
)

CREATE_EVENTS_RTREE_SQL = (
    "CREATE VIRTUAL TABLE IF NOT EXISTS events_rtree USING rtree(id, minx, maxx, miny, maxy)"
)

__all__ = ["events_rtree", "rtree_metadata", "CREATE_EVENTS_RTREE_SQL"]
