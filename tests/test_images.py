"""Pillow helpers behind uploads and image delivery."""

import io

import pytest
from PIL import Image

from conftest import make_image
from gallery_api.services.images import (
    InvalidImageError,
    normalize_format,
    probe_image,
    resize,
    transform_image,
    write_thumbnail,
)
from gallery_api.services.storage import safe_filename


@pytest.fixture()
def photo(tmp_path):
    path = tmp_path / "photo.jpg"
    path.write_bytes(make_image(400, 200, fmt="JPEG"))
    return path


def test_probe_reads_format_and_size(photo):
    info = probe_image(photo)

    assert info.format == "jpeg"
    assert (info.width, info.height) == (400, 200)


def test_probe_rejects_garbage(tmp_path):
    path = tmp_path / "fake.png"
    path.write_bytes(b"hello")

    with pytest.raises(InvalidImageError):
        probe_image(path)


def test_thumbnail_is_small_webp(photo, tmp_path):
    destination = write_thumbnail(photo, tmp_path / "thumbs" / "photo.webp")

    with Image.open(destination) as thumb:
        assert thumb.format == "WEBP"
        assert thumb.size == (300, 150)


@pytest.mark.parametrize(
    "fit, expected",
    [
        ("cover", (100, 100)),
        ("contain", (100, 100)),
        ("fill", (100, 100)),
        ("inside", (100, 50)),
        ("outside", (200, 100)),
        ("unknown", (100, 100)),
    ],
)
def test_resize_fits(fit, expected):
    img = Image.new("RGB", (400, 200))

    assert resize(img, 100, 100, fit).size == expected


def test_resize_single_dimension_keeps_ratio():
    img = Image.new("RGB", (400, 200))

    assert resize(img, None, 50, "fill").size == (100, 50)
    assert resize(img, None, None, "cover") is img


def test_transform_returns_encoded_bytes(photo):
    data = transform_image(photo, width=80, fmt="png")

    with Image.open(io.BytesIO(data)) as img:
        assert img.format == "PNG"
        assert img.size == (80, 40)


def test_transform_grayscale_contain(tmp_path):
    path = tmp_path / "gray.png"
    Image.new("L", (50, 100), 128).save(path)

    data = transform_image(path, width=60, height=60, fit="contain", fmt="jpeg")

    with Image.open(io.BytesIO(data)) as img:
        assert img.size == (60, 60)


@pytest.mark.parametrize("value, expected", [("PNG", "png"), ("jpg", "jpeg"), ("gif", "webp"), (None, "webp")])
def test_normalize_format(value, expected):
    assert normalize_format(value) == expected


def test_safe_filename():
    assert safe_filename("my%20photo.png") == "my photo.png"
    assert safe_filename("..\\..\\evil.png") == "evil.png"
    with pytest.raises(ValueError):
        safe_filename("../")
