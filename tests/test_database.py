"""Data access layer helpers not covered through the HTTP endpoints."""

import pytest

from conftest import add_file_record, create_album, create_user, run, update_album
from gallery_api.database import get_db_context
from gallery_api.models import Album
from gallery_api.services.database import Database, DuplicateNameError


def with_db(callback):
    async def _run():
        async with get_db_context() as session:
            return await callback(Database(session))

    return run(_run())


def test_update_and_delete_files():
    first = add_file_record("a.png")
    second = add_file_record("b.png")

    with_db(lambda db: db.update_file(first.id, {"width": 99}))
    assert with_db(lambda db: db.get_file_by_id(first.id)).width == 99

    with_db(lambda db: db.delete_files([first.id, second.id]))
    assert with_db(lambda db: db.get_file_count()) == 0


def test_albums_by_cover_finds_covers_and_fallbacks():
    summer = create_album("Summer")
    winter = create_album("Winter")
    create_album("Spring")
    cover = add_file_record("cover.png")
    update_album(summer.id, {"cover_id": cover.id})
    update_album(winter.id, {"cover_fallback_id": cover.id})

    albums = with_db(lambda db: db.get_albums_by_cover(cover.id))

    assert sorted(album.name for album in albums) == ["Summer", "Winter"]


def test_file_name_lookup_is_case_insensitive():
    add_file_record("Beach.PNG")

    assert with_db(lambda db: db.find_file_by_name("beach.png")).name == "Beach.PNG"


def test_album_name_index_rejects_duplicates():
    create_album("Summer")

    with pytest.raises(DuplicateNameError):
        create_album("SUMMER")


def test_album_file_counts():
    summer = create_album("Summer")
    winter = create_album("Winter")
    add_file_record("a.png", album_id=summer.id)
    add_file_record("b.png", album_id=summer.id)

    counts = with_db(lambda db: db.get_album_file_counts([summer.id, winter.id]))

    assert counts == {summer.id: 2, winter.id: 0}


def test_update_user_metadata_and_lookup():
    user = create_user()

    with_db(lambda db: db.update_user_metadata(user.id, {"first_name": "Renamed"}))

    refreshed = with_db(lambda db: db.get_user_by_id(user.id))
    assert refreshed.first_name == "Renamed"
    assert refreshed.email == "user@example.com"
    assert with_db(lambda db: db.get_user_by_email("USER@EXAMPLE.COM")).id == user.id


def test_published_albums_exclude_drafts_and_hidden():
    create_album("Visible")
    create_album("Hidden", hidden=True)
    create_album("Draft", draft=True)

    published = with_db(lambda db: db.get_published_albums())

    assert [album.name for album in published] == ["Visible"]
    assert all(isinstance(album, Album) for album in published)
