"""Модель события дорожных работ (работы, разрешения, ограничения Section 58)."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import BigInteger, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from relay.models.base import Base, ZonedDateTime
from relay.models.bbox import BBox, BBoxError, bounding_box_from_wkt

# Порядок важен: bbox берётся из первой непустой геометрии.
GEOMETRY_PRIORITY: Tuple[str, ...] = (
    "works_location_coordinates",
    "activity_coordinates",
    "section_58_coordinates",
)


class Event(Base):
    """Событие издателя, уникально идентифицируемое ``object_reference``."""

    __tablename__ = "events"
    __table_args__ = (
        Index("events_work_status_ref_idx", "work_status_ref"),
        Index("events_end_date_idx", "end_date"),
    )

    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True
    )

    # Идентификаторы
    event_type: Mapped[Optional[str]] = mapped_column(Text)
    object_reference: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    activity_reference_number: Mapped[Optional[str]] = mapped_column(Text)
    work_reference_number: Mapped[Optional[str]] = mapped_column(Text)
    section_58_reference_number: Mapped[Optional[str]] = mapped_column(Text)
    permit_reference_number: Mapped[Optional[str]] = mapped_column(Text)

    # Улица и ответственные организации
    usrn: Mapped[Optional[str]] = mapped_column(Text)
    street_name: Mapped[Optional[str]] = mapped_column(Text)
    area_name: Mapped[Optional[str]] = mapped_column(Text)
    town: Mapped[Optional[str]] = mapped_column(Text)
    highway_authority: Mapped[Optional[str]] = mapped_column(Text)
    highway_authority_swa_code: Mapped[Optional[str]] = mapped_column(Text)
    promoter_swa_code: Mapped[Optional[str]] = mapped_column(Text)
    promoter_organisation: Mapped[Optional[str]] = mapped_column(Text)

    # Геометрия (WKT) и описания
    activity_coordinates: Mapped[Optional[str]] = mapped_column(Text)
    activity_location_type: Mapped[Optional[str]] = mapped_column(Text)
    activity_location_description: Mapped[Optional[str]] = mapped_column(Text)
    works_location_coordinates: Mapped[Optional[str]] = mapped_column(Text)
    works_location_type: Mapped[Optional[str]] = mapped_column(Text)
    section_58_coordinates: Mapped[Optional[str]] = mapped_column(Text)
    section_58_location_type: Mapped[Optional[str]] = mapped_column(Text)

    # Категории и типы
    work_category: Mapped[Optional[str]] = mapped_column(Text)
    work_category_ref: Mapped[Optional[str]] = mapped_column(Text)
    work_status: Mapped[Optional[str]] = mapped_column(Text)
    work_status_ref: Mapped[Optional[str]] = mapped_column(Text)
    traffic_management_type: Mapped[Optional[str]] = mapped_column(Text)
    traffic_management_type_ref: Mapped[Optional[str]] = mapped_column(Text)
    current_traffic_management_type: Mapped[Optional[str]] = mapped_column(Text)
    current_traffic_management_type_ref: Mapped[Optional[str]] = mapped_column(Text)
    road_category: Mapped[Optional[str]] = mapped_column(Text)
    activity_type: Mapped[Optional[str]] = mapped_column(Text)
    activity_type_details: Mapped[Optional[str]] = mapped_column(Text)
    section_58_status: Mapped[Optional[str]] = mapped_column(Text)
    section_58_duration: Mapped[Optional[str]] = mapped_column(Text)
    section_58_extent: Mapped[Optional[str]] = mapped_column(Text)

    # Даты и время
    proposed_start_date: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    proposed_end_date: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    proposed_start_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    proposed_end_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    actual_start_date_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    actual_end_date_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    start_date: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    start_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    end_date: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    end_time: Mapped[Optional[datetime]] = mapped_column(ZonedDateTime)
    current_traffic_management_update_date: Mapped[Optional[datetime]] = mapped_column(
        ZonedDateTime
    )

    # Флаги в текстовом виде ("Yes" / "No" / "Not provided")
    is_ttro_required: Mapped[Optional[str]] = mapped_column(Text)
    is_covid_19_response: Mapped[Optional[str]] = mapped_column(Text)
    is_traffic_sensitive: Mapped[Optional[str]] = mapped_column(Text)
    is_deemed: Mapped[Optional[str]] = mapped_column(Text)
    collaborative_working: Mapped[Optional[str]] = mapped_column(Text)
    cancelled: Mapped[Optional[str]] = mapped_column(Text)
    traffic_management_required: Mapped[Optional[str]] = mapped_column(Text)

    # Прочее
    permit_conditions: Mapped[Optional[str]] = mapped_column(Text)
    permit_status: Mapped[Optional[str]] = mapped_column(Text)
    collaboration_type: Mapped[Optional[str]] = mapped_column(Text)
    collaboration_type_ref: Mapped[Optional[str]] = mapped_column(Text)
    close_footway: Mapped[Optional[str]] = mapped_column(Text)
    close_footway_ref: Mapped[Optional[str]] = mapped_column(Text)

    def preferred_coordinates(self) -> Optional[str]:
        """Первая непустая геометрия в порядке works → activity → section 58."""

        for attr in GEOMETRY_PRIORITY:
            value = getattr(self, attr)
            if value and value.strip():
                return value
        return None

    def bounding_box(self) -> BBox:
        coordinates = self.preferred_coordinates()
        if coordinates is None:
            raise BBoxError(
                f"У события {self.object_reference!r} нет ни одной геометрии "
                f"({', '.join(GEOMETRY_PRIORITY)})"
            )
        return bounding_box_from_wkt(coordinates)

    def column_values(self) -> Dict[str, Any]:
        """Значения всех колонок, кроме суррогатного ``id``."""

        return {
            column.name: getattr(self, column.key)
            for column in self.__table__.columns
            if column.name != "id"
        }

    def __repr__(self) -> str:  # pragma: no cover - для отладки
        return (
            f"Event(id={self.id!r}, object_reference={self.object_reference!r}, "
            f"event_type={self.event_type!r})"
        )


UPSERT_COLUMNS: Tuple[str, ...] = tuple(
    column.name for column in Event.__table__.columns if column.name != "id"
)

__all__ = ["Event", "GEOMETRY_PRIORITY", "UPSERT_COLUMNS"]
