"""Хранилище событий в SQLite с пространственным индексом R-tree."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import and_, delete, func, literal, select, text, union_all, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from relay.core.database import make_session_factory
from relay.core.logger import logger
from relay.models import BBox, BBoxError, Event, Facets, RefData, TemporalFilters, events_rtree
from relay.models.base import ZonedDateTime
from relay.models.bbox import bounding_box_from_wkt
from relay.models.event import UPSERT_COLUMNS
from relay.models.facets import FACET_NAMES

TERMINAL_WORK_STATUS_REFS: Tuple[str, ...] = ("completed", "cancelled")
REGEN_TOLERANCE = 1.0


class StoreError(RuntimeError):
    """Ошибка работы с хранилищем событий."""


def effective_end():
    """Фактическое окончание события: факт → план по разрешению → предложенное.

    Возвращается юлианский день, чтобы моменты с разными смещениями
    сравнивались как instants.
    """

    return func.julianday(
        func.coalesce(Event.actual_end_date_time, Event.end_date, Event.proposed_end_date)
    )


def julian(moment: datetime):
    return func.julianday(literal(moment, ZonedDateTime()))


def overlap_params(bbox: BBox) -> Tuple[float, float, float, float]:
    """Параметры пересечения в порядке ``(max_x, min_x, max_y, min_y)``.

    Именно в этом порядке они сравниваются с колонками
    ``minx, maxx, miny, maxy`` индекса (см. :func:`overlap_clause`).
    """

    return (bbox.max_x, bbox.min_x, bbox.max_y, bbox.min_y)


def overlap_clause(bbox: BBox):
    """``minx ≤ q.max_x ∧ maxx ≥ q.min_x ∧ miny ≤ q.max_y ∧ maxy ≥ q.min_y``."""

    query_max_x, query_min_x, query_max_y, query_min_y = overlap_params(bbox)
    return and_(
        events_rtree.c.minx <= query_max_x,
        events_rtree.c.maxx >= query_min_x,
        events_rtree.c.miny <= query_max_y,
        events_rtree.c.maxy >= query_min_y,
    )


def _upsert_statement():
    stmt = sqlite_insert(Event.__table__)
    stmt = stmt.on_conflict_do_update(
        index_elements=["object_reference"],
        set_={
            column: stmt.excluded[column]
            for column in UPSERT_COLUMNS
            if column != "object_reference"
        },
    )
    return stmt.returning(Event.__table__.c.id)


class UpsertBatch:
    """Пакетная запись событий в одной транзакции.

    Завершается ровно одним из вызовов :meth:`done` или :meth:`abort`;
    после этого пакет использовать нельзя. Как контекстный менеджер
    фиксирует транзакцию при успешном выходе и откатывает при исключении.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._statement = _upsert_statement()
        self._closed = False
        self._count = 0
        self._session.begin()

    @property
    def count(self) -> int:
        return self._count

    def upsert(self, event: Event) -> int:
        """Вставляет или обновляет событие по ``object_reference``, возвращает ``id``."""

        self._ensure_open()
        try:
            bbox = event.bounding_box()
            row_id = self._session.execute(self._statement, event.column_values()).scalar_one()
            self._replace_index_row(row_id, bbox)
        except BBoxError as exc:
            self.abort(exc)
            raise StoreError(f"Не удалось вычислить bbox: {exc}") from exc
        except SQLAlchemyError as exc:
            self.abort(exc)
            raise StoreError(
                f"Не удалось сохранить событие {event.object_reference!r}: {exc}"
            ) from exc

        self._count += 1
        return row_id

    def done(self) -> None:
        self._ensure_open()
        self._closed = True
        try:
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StoreError(f"Не удалось зафиксировать транзакцию: {exc}") from exc
        finally:
            self._session.close()
        logger.debug("Пакет из %d событий зафиксирован", self._count)

    def abort(self, error: Optional[BaseException] = None) -> None:
        """Откатывает транзакцию; ошибка отката связывается с исходной ошибкой."""

        if self._closed:
            return
        self._closed = True
        try:
            self._session.rollback()
        except SQLAlchemyError as exc:
            raise StoreError(
                f"Не удалось откатить транзакцию ({exc}); исходная ошибка: {error}"
            ) from (error or exc)
        finally:
            self._session.close()
        logger.warning("Пакет записи отменён: %s", error)

    def _replace_index_row(self, row_id: int, bbox: BBox) -> None:
        self._session.execute(delete(events_rtree).where(events_rtree.c.id == row_id))
        self._session.execute(
            events_rtree.insert().values(
                id=row_id,
                minx=bbox.min_x,
                maxx=bbox.max_x,
                miny=bbox.min_y,
                maxy=bbox.max_y,
            )
        )

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreError("Пакет уже завершён")

    def __enter__(self) -> "UpsertBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._closed:
            return False
        if exc is None:
            self.done()
        else:
            self.abort(exc)
        return False


class EventRepository:
    """Доступ к таблице ``events`` и индексу ``events_rtree``."""

    def __init__(self, engine: Engine, session_factory: Optional[sessionmaker[Session]] = None) -> None:
        self.engine = engine
        self.session_factory = session_factory or make_session_factory(engine)

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error("База данных не отвечает: %s", exc)
            return False
        return True

    def batch_upsert(self) -> UpsertBatch:
        try:
            return UpsertBatch(self.session_factory())
        except SQLAlchemyError as exc:
            raise StoreError(f"Не удалось начать транзакцию: {exc}") from exc

    def upsert(self, event: Event) -> int:
        """Запись одного события отдельной транзакцией."""

        with self.batch_upsert() as batch:
            return batch.upsert(event)

    def search(
        self,
        bbox: BBox,
        facets: Optional[Facets] = None,
        temporal: Optional[TemporalFilters] = None,
        now: Optional[datetime] = None,
    ) -> List[Event]:
        """События, чей bbox пересекает запрос и которые проходят все фильтры."""

        if bbox is None:
            raise StoreError("Ограничивающий прямоугольник обязателен")

        temporal = temporal or TemporalFilters()
        now = now or datetime.now(timezone.utc)
        window_start = now - timedelta(days=temporal.max_days_behind)
        window_end = now + timedelta(days=temporal.max_days_ahead)

        stmt = (
            select(Event)
            .join(events_rtree, events_rtree.c.id == Event.id)
            .where(overlap_clause(bbox))
            .where(effective_end().between(julian(window_start), julian(window_end)))
        )
        for name, values in (facets.active() if facets else {}).items():
            stmt = stmt.where(getattr(Event, name).in_(values))

        try:
            with self.session_factory() as session:
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Ошибка поиска событий: {exc}") from exc

    def ref_data(self) -> RefData:
        """Количество строк по каждому значению каждого фасета; NULL → ``""``."""

        queries = [
            select(
                literal(name).label("facet"),
                getattr(Event, name).label("value"),
                func.count().label("count"),
            ).group_by(getattr(Event, name))
            for name in FACET_NAMES
        ]

        result: RefData = {name: {} for name in FACET_NAMES}
        try:
            with self.engine.connect() as conn:
                rows = conn.execute(union_all(*queries)).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Ошибка получения справочных данных: {exc}") from exc

        for facet, value, count in rows:
            result[facet][value if value is not None else ""] = count
        return result

    def index_bbox(self, event_id: int) -> Optional[BBox]:
        """bbox, сохранённый в индексе для события (``None``, если строки нет)."""

        with self.engine.connect() as conn:
            row = conn.execute(
                select(
                    events_rtree.c.minx,
                    events_rtree.c.maxx,
                    events_rtree.c.miny,
                    events_rtree.c.maxy,
                ).where(events_rtree.c.id == event_id)
            ).first()
        if row is None:
            return None
        return BBox(min_x=row.minx, max_x=row.maxx, min_y=row.miny, max_y=row.maxy)

    def count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(Event)) or 0

    def regenerate_index(self) -> Tuple[int, int]:
        """Пересчитывает bbox индекса по текущей геометрии событий.

        Возвращает ``(affected, total)``. Всё выполняется в одной транзакции:
        при ошибке индекс остаётся без изменений.
        """

        coords = func.coalesce(
            func.nullif(Event.works_location_coordinates, ""),
            func.nullif(Event.activity_coordinates, ""),
            func.nullif(Event.section_58_coordinates, ""),
        )
        query = select(
            Event.id,
            coords.label("coords"),
            events_rtree.c.minx,
            events_rtree.c.maxx,
            events_rtree.c.miny,
            events_rtree.c.maxy,
        ).join(events_rtree, events_rtree.c.id == Event.id)

        affected = 0
        total = 0
        try:
            with self.engine.begin() as conn:
                rows = conn.execute(query).all()
                for row in rows:
                    total += 1
                    stored = BBox(min_x=row.minx, max_x=row.maxx, min_y=row.miny, max_y=row.maxy)
                    regen = bounding_box_from_wkt(row.coords)
                    if regen.equals(stored, REGEN_TOLERANCE):
                        continue

                    logger.info(
                        "Запись %d требует пересчёта bbox: %s не совпадает с сохранённым %s",
                        row.id,
                        regen,
                        stored,
                    )
                    result = conn.execute(
                        update(events_rtree)
                        .where(events_rtree.c.id == row.id)
                        .values(
                            minx=regen.min_x,
                            maxx=regen.max_x,
                            miny=regen.min_y,
                            maxy=regen.max_y,
                        )
                    )
                    if result.rowcount != 1:
                        raise StoreError(
                            f"Неожиданное число обновлённых строк {result.rowcount} для id={row.id}"
                        )
                    affected += 1
        except BBoxError as exc:
            raise StoreError(f"Не удалось пересчитать bbox: {exc}") from exc
        except SQLAlchemyError as exc:
            raise StoreError(f"Ошибка пересчёта индекса: {exc}") from exc

        return affected, total

    def completed_event_ids(self, days: int, now: Optional[datetime] = None) -> List[int]:
        """id завершённых событий, окончившихся раньше ``now - days``."""

        if days < 0:
            raise ValueError("days не может быть отрицательным")

        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=days)
        stmt = (
            select(Event.id)
            .where(Event.work_status_ref.in_(TERMINAL_WORK_STATUS_REFS))
            .where(effective_end() < julian(cutoff))
            .order_by(Event.id)
        )
        try:
            with self.session_factory() as session:
                return list(session.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise StoreError(f"Ошибка выборки завершённых событий: {exc}") from exc

    def delete_events(self, ids: Sequence[int]) -> int:
        """Удаляет события и их строки индекса в одной транзакции."""

        ids = list(ids)
        if not ids:
            return 0

        deleted = 0
        try:
            with self.engine.begin() as conn:
                for chunk in _chunked(ids, 500):
                    result = conn.execute(delete(Event.__table__).where(Event.__table__.c.id.in_(chunk)))
                    deleted += result.rowcount
                    conn.execute(delete(events_rtree).where(events_rtree.c.id.in_(chunk)))
        except SQLAlchemyError as exc:
            raise StoreError(f"Ошибка удаления событий: {exc}") from exc
        return deleted

    def close(self) -> None:
        self.engine.dispose()


def _chunked(items: List[Any], size: int) -> Iterable[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def event_payload(event: Event) -> Dict[str, Any]:
    """Представление события для API (без суррогатного ``id``)."""

    return event.column_values()


__all__ = [
    "EventRepository",
    "REGEN_TOLERANCE",
    "StoreError",
    "TERMINAL_WORK_STATUS_REFS",
    "UpsertBatch",
    "effective_end",
    "event_payload",
    "julian",
    "overlap_clause",
    "overlap_params",
]
