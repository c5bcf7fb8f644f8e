from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select, text

from relay.models import BBox, Event, Facets, TemporalFilters, events_rtree
from relay.services.store import StoreError, overlap_params


def _row_count(repository) -> int:
    with repository.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(Event.__table__)).scalar_one()


def _rtree_count(repository) -> int:
    with repository.engine.connect() as conn:
        return conn.execute(select(func.count()).select_from(events_rtree)).scalar_one()


def _search(repository, now, bbox=BBox(0, 100, 0, 100), facets=None, **temporal):
    return repository.search(bbox, facets, TemporalFilters(**temporal), now=now)


def test_overlap_params_order_is_max_min_max_min():
    bbox = BBox(min_x=1, max_x=2, min_y=3, max_y=4)

    assert overlap_params(bbox) == (2, 1, 4, 3)


def test_upsert_writes_row_and_index_entry(repository, make_event):
    with repository.batch_upsert() as batch:
        row_id = batch.upsert(make_event(works_location_coordinates="POINT(527459.24 176380.37)"))

    stored = repository.index_bbox(row_id)
    assert stored is not None
    assert stored.equals(BBox(527459.24, 527459.24, 176380.37, 176380.37), 0.1)
    assert _row_count(repository) == 1
    assert _rtree_count(repository) == 1


def test_upsert_is_idempotent_and_updates_geometry(repository, make_event):
    first_id = repository.upsert(make_event("TSR-1", activity_coordinates="POINT(10 10)"))
    second_id = repository.upsert(make_event("TSR-1", activity_coordinates="POINT(10 10)"))

    assert first_id == second_id
    assert _row_count(repository) == 1

    third_id = repository.upsert(
        make_event("TSR-1", works_location_coordinates=None, activity_coordinates="POINT(70 20)")
    )

    assert third_id == first_id
    assert _row_count(repository) == 1
    assert _rtree_count(repository) == 1
    assert repository.index_bbox(first_id).equals(BBox(70, 70, 20, 20), 0.01)


def test_upsert_replaces_all_columns(repository, make_event, now):
    repository.upsert(make_event("TSR-1", street_name="OLD ROAD", town="LEEDS"))
    repository.upsert(make_event("TSR-1", street_name="NEW ROAD"))

    [event] = _search(repository, now)
    assert event.street_name == "NEW ROAD"
    assert event.town is None


def test_event_without_geometry_aborts_batch(repository, make_event):
    batch = repository.batch_upsert()
    batch.upsert(make_event("TSR-1"))

    with pytest.raises(StoreError):
        batch.upsert(make_event("TSR-2", works_location_coordinates=None))

    assert _row_count(repository) == 0
    assert _rtree_count(repository) == 0
    with pytest.raises(StoreError):
        batch.upsert(make_event("TSR-3"))


def test_context_manager_rolls_back_on_error(repository, make_event):
    with pytest.raises(RuntimeError):
        with repository.batch_upsert() as batch:
            batch.upsert(make_event("TSR-1"))
            raise RuntimeError("interrupted")

    assert _row_count(repository) == 0


def test_done_batch_is_unusable(repository, make_event):
    batch = repository.batch_upsert()
    batch.upsert(make_event("TSR-1"))
    batch.done()

    with pytest.raises(StoreError):
        batch.upsert(make_event("TSR-2"))
    with pytest.raises(StoreError):
        batch.done()
    assert _row_count(repository) == 1


def test_search_by_bbox(repository, make_event, now):
    repository.upsert(make_event("TSR-1", works_location_coordinates="POINT(50 50)"))

    assert [e.object_reference for e in _search(repository, now, BBox(0, 100, 0, 100))] == ["TSR-1"]
    assert _search(repository, now, BBox(200, 300, 200, 300)) == []


@pytest.mark.parametrize(
    "query, expected",
    [
        (BBox(0, 15, 0, 100), True),  # пересекает левую грань
        (BBox(15, 25, 0, 100), True),  # внутри
        (BBox(25, 40, 0, 100), False),  # правее
        (BBox(0, 9, 0, 100), False),  # левее
        (BBox(0, 100, 0, 9), False),  # ниже
        (BBox(0, 100, 31, 40), False),  # выше
        (BBox(20, 20, 30, 30), True),  # касается угла
    ],
)
def test_search_overlap_semantics(repository, make_event, now, query, expected):
    repository.upsert(make_event("TSR-1", works_location_coordinates="LINESTRING(10 10, 20 30)"))

    assert bool(_search(repository, now, query)) is expected


def test_facets_are_or_within_and_across(repository, make_event, now):
    repository.upsert(make_event("A", work_status_ref="planned", road_category="2"))
    repository.upsert(make_event("B", work_status_ref="in_progress", road_category="2"))
    repository.upsert(make_event("C", work_status_ref="in_progress", road_category="4"))

    def refs(facets):
        return sorted(e.object_reference for e in _search(repository, now, facets=facets))

    assert refs(Facets()) == ["A", "B", "C"]
    assert refs(Facets(work_status_ref=["planned", "in_progress"])) == ["A", "B", "C"]
    assert refs(Facets(work_status_ref=["in_progress"])) == ["B", "C"]
    assert refs(Facets(work_status_ref=["in_progress"], road_category=["2"])) == ["B"]
    assert refs(Facets(permit_status=["granted"])) == []


def test_temporal_window(repository, make_event, now):
    repository.upsert(make_event("PAST", end_date=now - timedelta(days=3)))
    repository.upsert(make_event("SOON", end_date=now + timedelta(days=2)))
    repository.upsert(make_event("LATER", end_date=now + timedelta(days=20)))
    repository.upsert(
        make_event(
            "ACTUAL",
            end_date=now + timedelta(days=30),
            actual_end_date_time=now + timedelta(hours=1),
        )
    )
    repository.upsert(make_event("PROPOSED", end_date=None, proposed_end_date=now + timedelta(days=1)))
    repository.upsert(make_event("OPEN", end_date=None))

    def refs(**temporal):
        return sorted(e.object_reference for e in _search(repository, now, **temporal))

    assert refs() == ["ACTUAL", "PROPOSED", "SOON"]
    assert refs(max_days_ahead=30) == ["ACTUAL", "LATER", "PROPOSED", "SOON"]
    assert refs(max_days_behind=5) == ["ACTUAL", "PAST", "PROPOSED", "SOON"]


def test_search_returns_aware_timestamps(repository, make_event, now):
    repository.upsert(make_event("TSR-1", end_date=now + timedelta(days=1)))

    [event] = _search(repository, now)
    assert event.end_date == now + timedelta(days=1)


def test_search_keeps_publisher_offset(repository, make_event, now):
    summer_time = timezone(timedelta(hours=1))
    end = datetime(2024, 5, 2, 12, 0, tzinfo=summer_time)
    repository.upsert(make_event("TSR-BST", end_date=end))

    [event] = _search(repository, now)
    assert event.end_date == end
    assert event.end_date.utcoffset() == timedelta(hours=1)


def test_temporal_window_compares_instants_across_offsets(repository, make_event, now):
    summer_time = timezone(timedelta(hours=1))
    # 12:30 по летнему времени это 11:30 UTC, то есть внутри окна now + 1 день
    repository.upsert(make_event("INSIDE", end_date=datetime(2024, 5, 2, 12, 30, tzinfo=summer_time)))
    # 13:30 по летнему времени это 12:30 UTC, на полчаса позже окна
    repository.upsert(make_event("OUTSIDE", end_date=datetime(2024, 5, 2, 13, 30, tzinfo=summer_time)))

    refs = [e.object_reference for e in _search(repository, now, max_days_ahead=1)]

    assert refs == ["INSIDE"]


def test_ref_data_counts_values_and_maps_null_to_empty(repository, make_event):
    repository.upsert(make_event("A", work_status_ref="planned", highway_authority="LEEDS"))
    repository.upsert(make_event("B", work_status_ref="planned", highway_authority=None))
    repository.upsert(make_event("C", work_status_ref="completed", highway_authority="LEEDS"))

    refdata = repository.ref_data()

    assert refdata["work_status_ref"] == {"planned": 2, "completed": 1}
    assert refdata["highway_authority"] == {"LEEDS": 2, "": 1}
    assert refdata["permit_status"] == {"": 3}
    assert set(refdata) == {
        "permit_status",
        "traffic_management_type_ref",
        "work_status_ref",
        "work_category_ref",
        "road_category",
        "highway_authority",
        "promoter_organisation",
    }


def test_regenerate_index_fixes_drift_and_is_fixed_point(repository, make_event):
    good_id = repository.upsert(make_event("A", works_location_coordinates="POINT(10 10)"))
    drifted_id = repository.upsert(make_event("B", works_location_coordinates="POINT(500 500)"))
    with repository.engine.begin() as conn:
        conn.execute(
            text("UPDATE events_rtree SET minx=0, maxx=0, miny=0, maxy=0 WHERE id=:id"),
            {"id": drifted_id},
        )

    assert repository.regenerate_index() == (1, 2)
    assert repository.index_bbox(drifted_id).equals(BBox(500, 500, 500, 500), 0.01)
    assert repository.index_bbox(good_id).equals(BBox(10, 10, 10, 10), 0.01)
    assert repository.regenerate_index() == (0, 2)


def test_regenerate_index_ignores_drift_within_tolerance(repository, make_event):
    row_id = repository.upsert(make_event("A", works_location_coordinates="POINT(10 10)"))
    with repository.engine.begin() as conn:
        conn.execute(text("UPDATE events_rtree SET maxx=10.5 WHERE id=:id"), {"id": row_id})

    assert repository.regenerate_index() == (0, 1)


def test_completed_events_are_selected_and_deleted(repository, make_event, now):
    old_done = repository.upsert(
        make_event("OLD", work_status_ref="completed", end_date=now - timedelta(days=10))
    )
    old_cancelled = repository.upsert(
        make_event("CANCELLED", work_status_ref="cancelled", end_date=now - timedelta(days=8))
    )
    repository.upsert(make_event("RECENT", work_status_ref="completed", end_date=now - timedelta(days=1)))
    repository.upsert(make_event("ACTIVE", work_status_ref="in_progress", end_date=now - timedelta(days=30)))

    ids = repository.completed_event_ids(7, now=now)
    assert ids == sorted([old_done, old_cancelled])

    assert repository.delete_events(ids) == 2
    assert _row_count(repository) == 2
    assert _rtree_count(repository) == 2
    assert repository.index_bbox(old_done) is None


def test_delete_events_with_no_ids_is_noop(repository):
    assert repository.delete_events([]) == 0


def test_completed_event_ids_rejects_negative_days(repository):
    with pytest.raises(ValueError):
        repository.completed_event_ids(-1)


def test_ping(repository):
    assert repository.ping() is True
