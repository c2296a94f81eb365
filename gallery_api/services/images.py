"""
Image processing with Pillow: probing, thumbnails, on-the-fly resize/convert.
"""
import io
import time
from pathlib import Path
from typing import NamedTuple, Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from gallery_api.utils.prometheus_metrics import image_transform_duration_seconds

FITS = ("cover", "contain", "fill", "inside", "outside")
DEFAULT_FIT = "cover"

FORMATS = ("png", "jpeg", "webp")
DEFAULT_FORMAT = "webp"

THUMBNAIL_SIZE = (300, 300)
THUMBNAIL_QUALITY = 80


class InvalidImageError(Exception):
    """The file is not an image Pillow can decode."""


class ImageInfo(NamedTuple):
    format: str
    width: int
    height: int


def probe_image(path: Path) -> ImageInfo:
    """Read format and dimensions without decoding the pixel data."""
    try:
        with Image.open(path) as img:
            img.verify()
        # verify() leaves the image unusable, reopen for the size
        with Image.open(path) as img:
            fmt = img.format or Path(path).suffix.lstrip(".")
            img = ImageOps.exif_transpose(img)
            return ImageInfo(fmt.lower(), *img.size)
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidImageError(str(e)) from e


def write_thumbnail(source: Path, destination: Path, size: Tuple[int, int] = THUMBNAIL_SIZE) -> Path:
    """Downscale source into a WebP thumbnail."""
    with Image.open(source) as img:
        thumb = ImageOps.exif_transpose(img)
        thumb.thumbnail(size, Image.LANCZOS)

        if thumb.mode not in ("RGB", "RGBA", "L"):
            thumb = thumb.convert("RGBA")

        destination.parent.mkdir(parents=True, exist_ok=True)
        thumb.save(destination, "WEBP", quality=THUMBNAIL_QUALITY)
    return destination


def normalize_format(value: Optional[str]) -> str:
    """Requested output format, falling back to the default for unknown values."""
    value = (value or "").lower()
    if value == "jpg":
        value = "jpeg"
    return value if value in FORMATS else DEFAULT_FORMAT


def _target_size(
    source: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
    fit: str,
) -> Tuple[int, int]:
    """Output size for inside/outside, or for any fit when one side is free."""
    src_w, src_h = source
    if width and height:
        scale_w, scale_h = width / src_w, height / src_h
        scale = min(scale_w, scale_h) if fit == "inside" else max(scale_w, scale_h)
    elif width:
        scale = width / src_w
    else:
        scale = height / src_h
    return max(1, round(src_w * scale)), max(1, round(src_h * scale))


def resize(img: Image.Image, width: Optional[int], height: Optional[int], fit: str) -> Image.Image:
    """
    Resize following the usual fit keywords.

    - cover: crop to fill width x height
    - contain: letterbox inside width x height
    - fill: stretch to width x height
    - inside: largest size fitting within the box
    - outside: smallest size covering the box

    With a single dimension every fit keeps the aspect ratio.
    """
    if not width and not height:
        return img
    if fit not in FITS:
        fit = DEFAULT_FIT

    if width and height:
        if fit == "cover":
            return ImageOps.fit(img, (width, height), Image.LANCZOS)
        if fit == "contain":
            return ImageOps.pad(img, (width, height), Image.LANCZOS, color=(0, 0, 0, 0) if "A" in img.mode else (0, 0, 0))
        if fit == "fill":
            return img.resize((width, height), Image.LANCZOS)

    return img.resize(_target_size(img.size, width, height, fit), Image.LANCZOS)


def transform_image(
    path: Path,
    width: Optional[int] = None,
    height: Optional[int] = None,
    fit: Optional[str] = None,
    fmt: Optional[str] = None,
) -> bytes:
    """Resize and re-encode an image, returning the encoded bytes."""
    fmt = normalize_format(fmt)
    start = time.perf_counter()

    with Image.open(path) as img:
        img = ImageOps.exif_transpose(img)
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGB" if img.mode == "L" else "RGBA")
        img = resize(img, width, height, fit or DEFAULT_FIT)

        if fmt == "jpeg" and img.mode != "RGB":
            img = img.convert("RGB")

        buffer = io.BytesIO()
        img.save(buffer, fmt.upper())

    image_transform_duration_seconds.labels(format=fmt).observe(time.perf_counter() - start)
    return buffer.getvalue()
