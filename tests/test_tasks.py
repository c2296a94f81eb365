"""Scheduled tasks: cover recomputation, archive regeneration and the scheduler."""

import zipfile
from datetime import datetime, timedelta, timezone

import pytest

from conftest import add_file_record, create_album, get_album, run, update_album
from gallery_api.config import get_settings
from gallery_api.database import get_db_context
from gallery_api.models.base import utcnow
from gallery_api.services import storage
from gallery_api.structures import Task
from gallery_api.structures.task import humanize_delta
from gallery_api.tasks import archives_updater
from gallery_api.tasks.archives_updater import ArchivesUpdater
from gallery_api.tasks.covers_updater import CoversUpdater


def run_task(task_class):
    return run(task_class(get_db_context).execute())


def test_covers_updater_sets_first_file_as_fallback():
    album = create_album("Summer")
    now = utcnow()
    first = add_file_record("first.png", album_id=album.id, created_at=now)
    add_file_record("second.png", album_id=album.id, created_at=now + timedelta(seconds=1))

    assert run_task(CoversUpdater) == 1
    assert get_album(album.id).cover_fallback_id == first.id


def test_covers_updater_is_idempotent():
    album = create_album("Summer")
    add_file_record("first.png", album_id=album.id)

    run_task(CoversUpdater)
    fallback = get_album(album.id).cover_fallback_id

    assert run_task(CoversUpdater) == 0
    assert get_album(album.id).cover_fallback_id == fallback


def test_covers_updater_clears_dangling_cover_and_empty_fallback():
    album = create_album("Summer")
    update_album(album.id, {"cover_id": "gone", "cover_fallback_id": "gone-too"})

    run_task(CoversUpdater)

    refreshed = get_album(album.id)
    assert refreshed.cover_id is None
    assert refreshed.cover_fallback_id is None


def test_archives_updater_zips_album_files():
    album = create_album("Summer")
    add_file_record("a.png", album_id=album.id)
    add_file_record("b.png", album_id=album.id)
    add_file_record("lost.png", album_id=album.id, write=False)

    assert run_task(ArchivesUpdater) == 1

    with zipfile.ZipFile(storage.archive_path("Summer")) as bundle:
        assert sorted(bundle.namelist()) == ["a.png", "b.png"]
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in bundle.infolist())
    leftovers = [p.name for p in storage.archive_path("Summer").parent.iterdir() if p.name.startswith(".tmp-")]
    assert leftovers == []


def test_archives_updater_continues_after_a_failing_album(monkeypatch):
    create_album("Autumn")
    create_album("Summer")
    real_build = archives_updater.build_album_archive

    def build(album_name, files):
        if album_name == "Autumn":
            raise OSError("disk full")
        return real_build(album_name, files)

    monkeypatch.setattr(archives_updater, "build_album_archive", build)

    assert run_task(ArchivesUpdater) == 1
    assert storage.archive_path("Summer").is_file()
    assert not storage.archive_path("Autumn").exists()


class FailingTask(Task):
    name = "Failing"

    async def execute(self):
        raise RuntimeError("boom")


class DevOnlySkipped(Task):
    name = "Production only"
    no_development = True

    async def execute(self):
        raise AssertionError("must not run in DEV")


def test_failed_run_is_reported_not_raised():
    assert run(FailingTask(get_db_context).run()) is False


def test_no_development_tasks_skip_in_dev():
    assert get_settings().is_dev
    assert run(DevOnlySkipped(get_db_context).run()) is False


def test_next_run_is_today_or_tomorrow():
    class Noon(FailingTask):
        schedule = "12:30"

    task = Noon(get_db_context)
    morning = datetime(2024, 5, 1, 7, 30, tzinfo=timezone.utc)
    evening = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

    assert task.next_run(morning) == datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert task.next_run(evening) == datetime(2024, 5, 2, 12, 30, tzinfo=timezone.utc)
    assert task.time_until(morning) == "in 5 hours"


def test_invalid_schedule_is_rejected():
    class Broken(FailingTask):
        schedule = "25:00"

    with pytest.raises(ValueError):
        Broken(get_db_context)


@pytest.mark.parametrize(
    "seconds, expected",
    [(10, "in a few seconds"), (60, "in a minute"), (600, "in 10 minutes"), (3600, "in an hour"), (86400, "in a day")],
)
def test_humanize_delta(seconds, expected):
    assert humanize_delta(seconds) == expected
