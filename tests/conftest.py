"""Shared fixtures: a throwaway SQLite database and static root per test run."""

import asyncio
import io
import os
import shutil
import tempfile
from pathlib import Path

import pytest

TEST_ROOT = Path(tempfile.mkdtemp(prefix="gallery-api-tests-"))

# Settings are read once on import, so the environment must be ready first
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{TEST_ROOT / 'test.db'}"
os.environ["STATIC_ROOT"] = str(TEST_ROOT / "static")
os.environ["TASKS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["RATE_LIMIT_PER_MINUTE"] = "1000"
os.environ["AUTH_SECRET"] = "test-secret"
os.environ["ENVIRONMENT"] = "DEV"
os.environ["CDN_BASE_URL"] = "https://cdn.example.com"
os.environ["ANALYTICS_PROPERTY_ID"] = ""
os.environ["ANALYTICS_CREDENTIALS_FILE"] = ""
os.environ["LOG_DIR"] = ""

from fastapi.testclient import TestClient
from PIL import Image

import gallery_api.models  # noqa: F401
from gallery_api.config import get_settings
from gallery_api.database import Base, engine, get_db_context
from gallery_api.middlewares.rate_limit_middleware import limiter
from gallery_api.models import Album, File, UserCredentials, UserMetadata
from gallery_api.models.base import utcnow
from gallery_api.server import create_app
from gallery_api.services import storage
from gallery_api.services.database import Database
from gallery_api.utils.security import create_access_token, hash_password

PASSWORD = "correct-horse-battery"


def run(coro):
    return asyncio.run(coro)


async def _reset_database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


@pytest.fixture(autouse=True)
def clean_state():
    settings = get_settings()
    shutil.rmtree(settings.static_root, ignore_errors=True)
    settings.ensure_static_dirs()
    run(_reset_database())
    limiter.reset()
    yield


@pytest.fixture()
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def make_image(width=640, height=480, fmt="PNG", color=(200, 30, 30)) -> bytes:
    buffer = io.BytesIO()
    mode = "RGBA" if fmt == "PNG" else "RGB"
    Image.new(mode, (width, height), color).save(buffer, fmt)
    return buffer.getvalue()


def create_user(email="user@example.com", role="user", first_name="Test", password=PASSWORD):
    async def _create():
        async with get_db_context() as session:
            return await Database(session).insert_user(
                UserMetadata(first_name=first_name, last_name="User", role=role, avatar=""),
                UserCredentials(email=email, password=hash_password(password)),
            )

    return run(_create())


def create_album(name="Holidays", **fields):
    async def _create():
        now = utcnow()
        album = Album(
            name=name,
            posted_at=None if fields.get("draft") else now,
            created_at=now,
            modified_at=now,
            **fields,
        )
        async with get_db_context() as session:
            return await Database(session).insert_album(album)

    return run(_create())


def get_album(album_id):
    async def _get():
        async with get_db_context() as session:
            return await Database(session).get_album_by_id(album_id)

    return run(_get())


def get_file(name):
    async def _get():
        async with get_db_context() as session:
            return await Database(session).find_file_by_name(name)

    return run(_get())


def add_file_record(name, album_id=None, created_at=None, write=True):
    """Insert a file record directly, optionally writing a real image behind it."""
    if write:
        path = storage.gallery_path(name) if album_id else storage.cover_path(name)
        path.write_bytes(make_image(32, 32))

    async def _create():
        now = created_at or utcnow()
        async with get_db_context() as session:
            return await Database(session).insert_file(
                File(
                    name=name,
                    extname=storage.extension(name),
                    type="png",
                    size=1,
                    width=32,
                    height=32,
                    album_id=album_id,
                    created_at=now,
                    modified_at=now,
                )
            )

    return run(_create())


def auth_headers(user) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest.fixture()
def user():
    return create_user()


@pytest.fixture()
def admin():
    return create_user(email="admin@example.com", role="admin", first_name="Ada")


@pytest.fixture()
def headers(user):
    return auth_headers(user)


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


def update_album(album_id, fields):
    async def _update():
        async with get_db_context() as session:
            await Database(session).update_album(album_id, fields)

    run(_update())
