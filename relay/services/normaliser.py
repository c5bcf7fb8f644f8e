"""Приведение сообщений издателя к внутренней модели :class:`Event`."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

from relay.models import BBoxError, Event


class NormalisationError(ValueError):
    """Сообщение издателя не удалось преобразовать в событие."""


class ObjectData(BaseModel):
    """Вложенный объект ``object_data``. Перечисления издателя хранятся как строки."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    usrn: Optional[str] = None
    street_name: Optional[str] = None
    area_name: Optional[str] = None
    town: Optional[str] = None
    highway_authority: Optional[str] = None
    highway_authority_swa_code: Optional[str] = None
    promoter_swa_code: Optional[str] = None
    promoter_organisation: Optional[str] = None

    activity_reference_number: Optional[str] = None
    work_reference_number: Optional[str] = None
    section_58_reference_number: Optional[str] = None
    permit_reference_number: Optional[str] = None

    activity_coordinates: Optional[str] = None
    activity_location_type: Optional[str] = None
    activity_location_description: Optional[str] = None
    works_location_coordinates: Optional[str] = None
    works_location_type: Optional[str] = None
    section_58_coordinates: Optional[str] = None
    section_58_location_type: Optional[str] = None

    work_category: Optional[str] = None
    work_category_ref: Optional[str] = None
    work_status: Optional[str] = None
    work_status_ref: Optional[str] = None
    traffic_management_type: Optional[str] = None
    traffic_management_type_ref: Optional[str] = None
    current_traffic_management_type: Optional[str] = None
    current_traffic_management_type_ref: Optional[str] = None
    road_category: Optional[str] = None
    activity_type: Optional[str] = None
    activity_type_details: Optional[str] = None
    section_58_status: Optional[str] = None
    section_58_duration: Optional[str] = None
    section_58_extent: Optional[str] = None

    proposed_start_date: Optional[datetime] = None
    proposed_end_date: Optional[datetime] = None
    proposed_start_time: Optional[datetime] = None
    proposed_end_time: Optional[datetime] = None
    actual_start_date_time: Optional[datetime] = None
    actual_end_date_time: Optional[datetime] = None
    start_date: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_date: Optional[datetime] = None
    end_time: Optional[datetime] = None
    current_traffic_management_update_date: Optional[datetime] = None

    is_ttro_required: Optional[str] = None
    is_covid_19_response: Optional[str] = None
    is_traffic_sensitive: Optional[str] = None
    is_deemed: Optional[str] = None
    collaborative_working: Optional[str] = None
    cancelled: Optional[str] = None
    traffic_management_required: Optional[str] = None

    permit_conditions: Optional[str] = None
    permit_status: Optional[str] = None
    collaboration_type: Optional[str] = None
    collaboration_type_ref: Optional[str] = None
    close_footway: Optional[str] = None
    close_footway_ref: Optional[str] = None


class EventNotifierMessage(BaseModel):
    """Сообщение о событии, вложенное в поле ``Message`` конверта."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    event_reference: Optional[str] = None
    event_type: str
    object_type: Optional[str] = None
    object_reference: str
    event_time: Optional[datetime] = None
    object_data: ObjectData


def parse_event_message(raw: str | bytes) -> EventNotifierMessage:
    try:
        return EventNotifierMessage.model_validate_json(raw)
    except ValidationError as exc:
        raise NormalisationError(f"Сообщение не соответствует схеме издателя: {exc}") from exc


def event_from_message(message: EventNotifierMessage) -> Event:
    """Строит :class:`Event` и убеждается, что для него вычисляется bbox."""

    data: dict[str, Any] = message.object_data.model_dump()
    event = Event(
        object_reference=message.object_reference,
        event_type=message.event_type,
        **data,
    )

    try:
        event.bounding_box()
    except BBoxError as exc:
        raise NormalisationError(str(exc)) from exc

    return event


def normalise(raw: str | bytes) -> Event:
    return event_from_message(parse_event_message(raw))


__all__ = [
    "EventNotifierMessage",
    "NormalisationError",
    "ObjectData",
    "event_from_message",
    "normalise",
    "parse_event_message",
]
