"""Application wiring: route discovery, error bodies, static files, health and sitemap."""

import types

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient

from conftest import add_file_record, create_album
from gallery_api import routers
from gallery_api.middlewares.rate_limit_middleware import RATE_LIMIT_PAYLOAD
from gallery_api.server import create_app, discover_routes, discover_tasks, error_body
from gallery_api.services import storage
from gallery_api.structures import Route
from gallery_api.utils.prometheus_metrics import ready


def test_routes_are_sorted_by_position():
    found = discover_routes(routers)
    paths = [path for path, _ in found]
    positions = [route.position for _, route in found]

    assert positions == sorted(positions)
    assert set(paths) == {"/health", "/users", "/authentication", "/albums", "/files", "/sitemap", "/analytics"}
    assert paths.index("/health") < paths.index("/albums")


def test_unknown_middleware_name_fails_fast(monkeypatch):
    bogus = Route(path="/bogus", router=APIRouter(), middlewares=["nope"])
    monkeypatch.setattr("gallery_api.server.discover_routes", lambda: [("/bogus", bogus)])

    with pytest.raises(ValueError):
        create_app()


def test_tasks_are_discovered():
    names = sorted(task.name for task in discover_tasks(types.SimpleNamespace()))

    assert names == ["Update Albums", "Update Albums Archives"]


def test_root(client):
    body = client.get("/").json()

    assert body["name"] == "Gallery API"
    assert body["docs"] == "/docs"


def test_not_found_uses_error_body(client):
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"]["status"] == 404


def test_error_body_shape():
    assert error_body(409, "taken") == {"error": {"status": 409, "message": "taken"}}


def test_unhandled_exception_returns_500_with_request_id():
    app = create_app()

    @app.get("/explode")
    async def explode():
        raise RuntimeError("kaboom")

    with TestClient(app, raise_server_exceptions=False) as test_client:
        response = test_client.get("/explode", headers={"X-Request-ID": "req-123"})

    assert response.status_code == 500
    error = response.json()["error"]
    assert error["message"] == "Internal server error"
    assert error["request_id"] == "req-123"


def test_request_id_is_echoed(client):
    response = client.get("/", headers={"X-Request-ID": "abc"})

    assert response.headers["X-Request-ID"] == "abc"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"
    assert isinstance(response.json()["latest_check"], int)
    assert "no-store" in response.headers["Cache-Control"]
    assert "Expires" in response.headers


def test_health_not_ready(client):
    ready.set(0)
    try:
        response = client.get("/health")
    finally:
        ready.set(1)

    assert response.status_code == 503


def test_metrics_are_exposed(client):
    response = client.get("/metrics/")

    assert response.status_code == 200
    assert "gallery_api_ready" in response.text


def test_static_files_are_cached_and_cross_origin(client):
    storage.gallery_path("beach.png").write_bytes(b"png bytes")

    response = client.get("/gallery/beach.png")

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Cache-Control"] == "public, max-age=31536000, immutable"


def test_cors_allows_configured_origin(client):
    response = client.options(
        "/albums",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "GET"},
    )

    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


def test_rate_limit_payload(client, headers):
    for idx in range(5):
        client.post("/albums", json={"name": f"Album {idx}"}, headers=headers)

    response = client.post("/albums", json={"name": "One too many"}, headers=headers)

    assert response.status_code == 429
    assert response.json() == RATE_LIMIT_PAYLOAD
    assert response.json()["message"] == "Too many requests, please you need to slow down, try again later."


def test_sitemap_lists_published_albums(client):
    summer = create_album("Summer")
    create_album("Hidden", hidden=True)
    create_album("Draft", draft=True)
    autumn = create_album("Autumn")
    add_file_record("beach.png", album_id=summer.id)

    entries = client.get("/sitemap").json()

    assert [entry["loc"] for entry in entries] == [f"/albums/{autumn.id}", f"/albums/{summer.id}"]
    assert entries[1]["images"] == [{"loc": "https://cdn.example.com/gallery/beach.png"}]
    assert entries[1]["changefreq"] == "monthly"
    assert entries[1]["priority"] == 0.8
