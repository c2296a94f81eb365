"""Album endpoints: creation, updates, cascading deletes and covers."""

import pytest

from conftest import (
    add_file_record,
    create_album,
    get_album,
    get_file,
    make_image,
    update_album,
)
from gallery_api.services import storage


def test_create_album_defaults_flags_and_posts(client, headers):
    response = client.post("/albums", json={"name": "Summer"}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["name"] == "Summer"
    assert body["draft"] is False
    assert body["favorite"] is False
    assert body["posted_at"] is not None
    assert body["file_count"] == 0


def test_create_draft_album_is_not_posted(client, headers):
    response = client.post("/albums", json={"name": "Later", "draft": True}, headers=headers)

    assert response.status_code == 201
    assert response.json()["posted_at"] is None


def test_create_album_requires_name(client, headers):
    response = client.post("/albums", json={"draft": True}, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": {"status": 400, "message": 'Missing "name" field from request body.'}}


def test_create_album_rejects_non_string_name(client, headers):
    response = client.post("/albums", json={"name": 42}, headers=headers)

    assert response.status_code == 400


def test_duplicate_album_name_any_case_conflicts(client, headers):
    create_album("Holidays")

    response = client.post("/albums", json={"name": "HOLIDAYS"}, headers=headers)

    assert response.status_code == 409
    listing = client.get("/albums", headers=headers).json()
    assert listing["count"] == 1


def test_create_album_is_rate_limited(client, headers):
    codes = [
        client.post("/albums", json={"name": f"Album {idx}"}, headers=headers).status_code
        for idx in range(6)
    ]

    assert codes[:5] == [201] * 5
    assert codes[5] == 429


def test_list_albums_filters_and_counts(client, headers):
    summer = create_album("Summer", favorite=True)
    create_album("Winter", draft=True)
    add_file_record("beach.png", album_id=summer.id)

    everything = client.get("/albums", headers=headers).json()
    assert everything["count"] == 2
    assert [album["name"] for album in everything["data"]] == ["Summer", "Winter"]
    assert everything["data"][0]["file_count"] == 1

    drafts = client.get("/albums", params={"status": "draft"}, headers=headers).json()
    assert [album["name"] for album in drafts["data"]] == ["Winter"]

    favorites = client.get("/albums", params={"favorites": "true"}, headers=headers).json()
    assert [album["name"] for album in favorites["data"]] == ["Summer"]

    search = client.get("/albums", params={"search": "WIN"}, headers=headers).json()
    assert [album["name"] for album in search["data"]] == ["Winter"]


def test_get_album_and_unknown_album(client, headers):
    album = create_album("Summer")

    assert client.get(f"/albums/{album.id}", headers=headers).json()["name"] == "Summer"
    assert client.get("/albums/missing", headers=headers).status_code == 404


def test_update_album_keeps_unset_flags(client, headers):
    album = create_album("Summer", favorite=True)

    response = client.put(f"/albums/{album.id}", json={"name": "Summer", "nsfw": True}, headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["nsfw"] is True
    assert body["favorite"] is True


def test_update_album_without_changes(client, headers):
    album = create_album("Summer")

    response = client.put(f"/albums/{album.id}", json={"name": "Summer", "draft": False}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["message"] == "No changes were made to the album."


def test_publishing_a_draft_stamps_posted_at(client, headers):
    album = create_album("Summer", draft=True)

    response = client.put(f"/albums/{album.id}", json={"name": "Summer", "draft": False}, headers=headers)

    assert response.status_code == 200
    assert response.json()["posted_at"] is not None


def test_rename_to_taken_name_conflicts(client, headers):
    create_album("Summer")
    winter = create_album("Winter")

    response = client.put(f"/albums/{winter.id}", json={"name": "summer"}, headers=headers)

    assert response.status_code == 409


def test_rename_moves_archive(client, headers):
    album = create_album("Summer")
    storage.archive_path("Summer").write_bytes(b"zip")

    response = client.put(f"/albums/{album.id}", json={"name": "Autumn"}, headers=headers)

    assert response.status_code == 200
    assert not storage.archive_path("Summer").exists()
    assert storage.archive_path("Autumn").read_bytes() == b"zip"


def test_case_only_rename_is_allowed(client, headers):
    album = create_album("summer")

    response = client.put(f"/albums/{album.id}", json={"name": "Summer"}, headers=headers)

    assert response.status_code == 200
    assert response.json()["name"] == "Summer"


def test_delete_album_cascades(client, headers):
    album = create_album("Summer")
    add_file_record("beach.png", album_id=album.id)
    storage.thumbnail_path("beach.png").write_bytes(b"thumb")
    storage.archive_path("Summer").write_bytes(b"zip")

    response = client.delete(f"/albums/{album.id}", headers=headers)

    assert response.status_code == 204
    assert client.get(f"/albums/{album.id}", headers=headers).status_code == 404
    assert get_file("beach.png") is None
    assert not storage.gallery_path("beach.png").exists()
    assert not storage.thumbnail_path("beach.png").exists()
    assert not storage.archive_path("Summer").exists()


def test_bulk_delete_unknown_id_deletes_nothing(client, headers):
    album = create_album("Summer")

    response = client.request("DELETE", "/albums", json={"ids": [album.id, "missing"]}, headers=headers)

    assert response.status_code == 404
    assert get_album(album.id) is not None


def test_bulk_delete_albums(client, headers):
    first = create_album("Summer")
    second = create_album("Winter")

    response = client.request("DELETE", "/albums", json={"ids": [first.id, second.id]}, headers=headers)

    assert response.status_code == 204
    assert client.get("/albums", headers=headers).json()["count"] == 0


def test_upload_cover_sets_cover_id(client, headers):
    album = create_album("Summer")

    response = client.post(
        f"/albums/{album.id}/cover/upload",
        files={"file": ("cover.png", make_image(), "image/png")},
        headers=headers,
    )

    assert response.status_code == 200
    assert response.text == "cover.png"
    cover = get_file("cover.png")
    assert cover.album_id is None
    assert cover.width == 640
    assert get_album(album.id).cover_id == cover.id
    assert storage.cover_path("cover.png").is_file()


def test_reuploading_current_cover_is_a_no_op(client, headers):
    album = create_album("Summer")
    upload = {"file": ("cover.png", make_image(), "image/png")}
    client.post(f"/albums/{album.id}/cover/upload", files=upload, headers=headers)
    cover_id = get_album(album.id).cover_id

    response = client.post(f"/albums/{album.id}/cover/upload", files=upload, headers=headers)

    assert response.status_code == 200
    assert get_album(album.id).cover_id == cover_id


def test_delete_cover_clears_cover_id(client, headers):
    album = create_album("Summer")
    client.post(
        f"/albums/{album.id}/cover/upload",
        files={"file": ("cover.png", make_image(), "image/png")},
        headers=headers,
    )

    response = client.request("DELETE", f"/albums/{album.id}/cover/upload", content="cover.png", headers=headers)

    assert response.status_code == 204
    assert get_album(album.id).cover_id is None
    assert get_file("cover.png") is None
    assert not storage.cover_path("cover.png").exists()


def test_delete_cover_leaves_fallback_alone(client, headers):
    album = create_album("Summer")
    first = add_file_record("beach.png", album_id=album.id)
    update_album(album.id, {"cover_fallback_id": first.id})

    response = client.request("DELETE", f"/albums/{album.id}/cover/upload", content="beach.png", headers=headers)

    assert response.status_code == 204
    assert get_file("beach.png") is not None
    assert get_album(album.id).cover_fallback_id == first.id


def test_delete_unknown_cover(client, headers):
    album = create_album("Summer")

    response = client.request("DELETE", f"/albums/{album.id}/cover/upload", content="nope.png", headers=headers)

    assert response.status_code == 404


def test_download_is_public(client):
    album = create_album("Summer")

    assert client.get(f"/albums/{album.id}/download").status_code == 404

    storage.archive_path("Summer").write_bytes(b"PK\x05\x06" + b"\x00" * 18)
    response = client.get(f"/albums/{album.id}/download")

    assert response.status_code == 200
    assert response.headers["content-type"] == "application/zip"
    assert "Summer.zip" in response.headers["content-disposition"]


def test_albums_require_authentication(client):
    response = client.get("/albums")

    assert response.status_code == 401
    assert response.json()["error"]["message"] == "No authorization header provided"


def test_album_names_that_leave_archives_are_rejected(client, headers):
    for name in ("../../escaped", "a/b", "a\\b", "..", "nul\x00byte"):
        response = client.post("/albums", json={"name": name}, headers=headers)
        assert response.status_code == 400, name

    assert client.get("/albums", headers=headers).json()["count"] == 0


def test_rename_into_another_directory_is_rejected(client, headers):
    album = create_album("Summer")

    response = client.put(f"/albums/{album.id}", json={"name": "../Summer"}, headers=headers)

    assert response.status_code == 400
    assert get_album(album.id).name == "Summer"


def test_archive_path_stays_in_archives():
    archives = storage.archive_path("Summer").parent

    assert storage.archive_path("Summer...").parent == archives
    for name in ("../escaped", "..", "a/b"):
        with pytest.raises(ValueError):
            storage.archive_path(name)
