"""Тесты пакетной загрузки сообщений из каталога."""
from __future__ import annotations

import pytest

from relay.services import bulk_loader
from relay.services.bulk_loader import BulkLoadError, load_folder, walk_files


@pytest.fixture()
def messages_dir(tmp_path, build_message):
    root = tmp_path / "messages"
    (root / "2020" / "06").mkdir(parents=True)
    (root / "a.json").write_text(build_message(object_reference="A"), encoding="utf-8")
    (root / "2020" / "b.json").write_text(build_message(object_reference="B"), encoding="utf-8")
    (root / "2020" / "06" / "c.json").write_text(
        build_message(object_reference="C", activity_coordinates="POINT(1 1)"),
        encoding="utf-8",
    )
    return root


def test_walk_files_is_sorted_and_limited(messages_dir):
    names = [path.name for path in walk_files(messages_dir)]
    limited = walk_files(messages_dir, max_files=2)

    assert sorted(names) == ["a.json", "b.json", "c.json"]
    assert len(limited) == 2


def test_load_folder_upserts_every_message(repository, messages_dir):
    assert load_folder(repository, messages_dir) == 3
    assert repository.count() == 3


def test_load_folder_respects_max_files(repository, messages_dir):
    assert load_folder(repository, messages_dir, max_files=1) == 1
    assert repository.count() == 1


def test_bad_file_aborts_whole_batch(repository, messages_dir):
    (messages_dir / "zz_broken.json").write_text("{not json", encoding="utf-8")

    with pytest.raises(BulkLoadError, match="zz_broken.json"):
        load_folder(repository, messages_dir)

    assert repository.count() == 0


def test_missing_folder_is_an_error(repository, tmp_path):
    with pytest.raises(BulkLoadError):
        load_folder(repository, tmp_path / "absent")


def test_unexpected_error_releases_batch(repository, messages_dir, make_event, monkeypatch):
    real_normalise = bulk_loader.normalise
    calls = []

    def _fails_on_second(raw):
        calls.append(raw)
        if len(calls) == 2:
            raise RuntimeError("диск отключён")
        return real_normalise(raw)

    monkeypatch.setattr(bulk_loader, "normalise", _fails_on_second)

    with pytest.raises(RuntimeError, match="диск отключён"):
        load_folder(repository, messages_dir)

    assert repository.count() == 0
    repository.upsert(make_event("AFTER"))
    assert repository.count() == 1
