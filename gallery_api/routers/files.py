"""
Files router: uploads, deletions, on-the-fly image delivery and downloads.
"""
import math
import os
import uuid
from typing import Any, Dict, Iterable, List, Literal, Optional

from fastapi import (
    APIRouter,
    Depends,
    File as FileField,
    HTTPException,
    Query,
    Request,
    Response,
    UploadFile,
    status,
)
from fastapi.responses import FileResponse as DownloadResponse
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool

from gallery_api.config import get_settings
from gallery_api.dependencies.database import get_database
from gallery_api.models import File
from gallery_api.models.base import utcnow
from gallery_api.schemas.album import IdsBody
from gallery_api.schemas.file import FileList, FileResponse, FileWithAlbum
from gallery_api.services import storage
from gallery_api.services.database import Database, DuplicateNameError
from gallery_api.services.images import (
    InvalidImageError,
    normalize_format,
    probe_image,
    transform_image,
    write_thumbnail,
)
from gallery_api.structures import Route, public
from gallery_api.utils.logger import log_info, log_warning
from gallery_api.utils.prometheus_metrics import file_operations_total, file_upload_size_bytes

router = APIRouter(tags=["Files"])
settings = get_settings()

FILE_EXISTS = "A file with this name already exists."

# Upper bound for requested output dimensions
MAX_DIMENSION = 10000


async def release_covers(db: Database, file: File, deleted: Iterable[str] = ()) -> None:
    """
    Keep album covers consistent before a file record goes away: a deleted
    cover is cleared, a deleted fallback cover moves to the first remaining
    file of the album (or null). Albums are found through their cover
    references, so uploaded covers without an album are handled too.

    deleted lists every id removed in the same operation; none of them can
    become the new fallback.
    """
    gone = set(deleted) | {file.id}
    now = utcnow()
    changes: Dict[str, Dict[str, Any]] = {}
    if file.album_id:
        changes[file.album_id] = {"modified_at": now}

    for album in await db.get_albums_by_cover(file.id):
        fields = changes.setdefault(album.id, {"modified_at": now})
        if album.cover_id == file.id:
            fields["cover_id"] = None
        if album.cover_fallback_id == file.id:
            remaining = [f for f in await db.get_album_files(album.id) if f.id not in gone]
            fields["cover_fallback_id"] = remaining[0].id if remaining else None

    for album_id, fields in changes.items():
        await db.update_album(album_id, fields)


async def remove_file(db: Database, file: File) -> None:
    """Delete a file record and its bytes after releasing its cover references."""
    await release_covers(db, file)
    await db.delete_file(file.id)
    storage.remove_file_assets(file)


@router.get("", response_model=FileList, summary="List files")
async def list_files(
    search: Optional[str] = Query(None, max_length=255),
    sort: Literal["name", "created_at", "modified_at", "size"] = "created_at",
    order: Literal["asc", "desc"] = "desc",
    include_album: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    db: Database = Depends(get_database),
) -> FileList:
    count = await db.get_file_count(search=search)
    files = await db.get_files(
        search=search,
        sort=sort,
        order=order,
        include_album=include_album,
        skip=(page - 1) * limit,
        limit=limit,
    )
    if include_album:
        data = [FileWithAlbum.model_validate(file) for file in files]
    else:
        data = [FileWithAlbum(**FileResponse.model_validate(file).model_dump()) for file in files]
    return FileList(data=data, count=count, pages=math.ceil(count / limit))


@router.post(
    "/upload",
    response_class=PlainTextResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload an image",
)
async def upload_file(
    file: UploadFile = FileField(...),
    album_id: Optional[str] = Query(None, max_length=64),
    db: Database = Depends(get_database),
) -> PlainTextResponse:
    """
    Store an image in the gallery.

    - **album_id**: owning album (optional)

    The image is probed with Pillow, a WebP thumbnail is written and the
    album's modification time is refreshed. Returns the stored file name.
    """
    try:
        name = storage.safe_filename(file.filename)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file was uploaded.")

    if await db.find_file_by_name(name) is not None:
        file_operations_total.labels(operation="upload", result="conflict").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=FILE_EXISTS)

    if album_id and await db.get_album_by_id(album_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Album not found.")

    # stream to a scratch name; the final name is only taken once the record exists
    destination = storage.gallery_path(name)
    scratch = destination.with_name(f".upload-{uuid.uuid4().hex}")
    try:
        size = await storage.save_upload(file, scratch, settings.max_upload_size)
    except storage.UploadTooLargeError:
        file_operations_total.labels(operation="upload", result="too_large").inc()
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large.")

    try:
        try:
            info = await run_in_threadpool(probe_image, scratch)
        except InvalidImageError:
            file_operations_total.labels(operation="upload", result="invalid").inc()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The uploaded file is not a valid image.")

        now = utcnow()
        try:
            record = await db.insert_file(
                File(
                    name=name,
                    extname=storage.extension(name),
                    type=info.format,
                    size=size,
                    width=info.width,
                    height=info.height,
                    album_id=album_id or None,
                    created_at=now,
                    modified_at=now,
                )
            )
        except DuplicateNameError:
            file_operations_total.labels(operation="upload", result="conflict").inc()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=FILE_EXISTS)

        os.replace(scratch, destination)
        try:
            await run_in_threadpool(write_thumbnail, destination, storage.thumbnail_path(name))
        except Exception:
            # the record is rolled back with the request, the bytes must go too
            storage.remove_path(destination)
            storage.remove_path(storage.thumbnail_path(name))
            file_operations_total.labels(operation="upload", result="error").inc()
            raise
    finally:
        storage.remove_path(scratch)

    if record.album_id:
        await db.update_album(record.album_id, {"modified_at": now})

    file_upload_size_bytes.observe(size)
    file_operations_total.labels(operation="upload", result="success").inc()
    log_info("File uploaded", event="files", file_id=record.id, album_id=record.album_id, size=size)
    return PlainTextResponse(name, status_code=status.HTTP_201_CREATED)


@router.delete("/upload", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an upload by name")
async def delete_upload(
    request: Request,
    db: Database = Depends(get_database),
) -> Response:
    """Delete the file named in the text body, with its thumbnail."""
    try:
        name = storage.safe_filename((await request.body()).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    file = await db.find_file_by_name(name)
    if file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    await remove_file(db, file)
    file_operations_total.labels(operation="delete", result="success").inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, summary="Delete several files")
async def delete_files(
    body: IdsBody,
    db: Database = Depends(get_database),
) -> Response:
    """Nothing is deleted when one of the ids is unknown."""
    files: List[File] = []
    for file_id in body.ids:
        file = await db.get_file_by_id(file_id)
        if file is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"File '{file_id}' not found")
        files.append(file)

    ids = [file.id for file in files]
    for file in files:
        await release_covers(db, file, deleted=ids)
    await db.delete_files(ids)
    for file in files:
        storage.remove_file_assets(file)

    file_operations_total.labels(operation="delete", result="success").inc(len(files))
    log_info("Files deleted", event="files", count=len(files))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{name}", summary="Get a resized image")
@public
async def get_image(
    name: str,
    width: Optional[int] = Query(None, ge=1, le=MAX_DIMENSION),
    height: Optional[int] = Query(None, ge=1, le=MAX_DIMENSION),
    fit: Optional[str] = None,
    output_format: Optional[str] = Query(None, alias="format"),
    db: Database = Depends(get_database),
) -> Response:
    """
    Resize and convert an image on every request.

    - **fit**: cover, contain, fill, inside or outside
    - **format**: png, jpeg or webp (default webp)
    """
    file = await db.find_file_by_name(name)
    if file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")

    path = storage.stored_path(file)
    if not path.is_file():
        log_warning("Image missing on disk", event="files", file_id=file.id)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")

    fmt = normalize_format(output_format)
    content = await run_in_threadpool(transform_image, path, width, height, fit, fmt)
    return Response(content=content, media_type=f"image/{fmt}")


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a file")
async def delete_file(
    file_id: str,
    db: Database = Depends(get_database),
) -> Response:
    file = await db.get_file_by_id(file_id)
    if file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    await remove_file(db, file)
    file_operations_total.labels(operation="delete", result="success").inc()
    log_info("File deleted", event="files", file_id=file.id, album_id=file.album_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{file_id}/download", summary="Download the original file")
@public
async def download_file(
    file_id: str,
    db: Database = Depends(get_database),
) -> DownloadResponse:
    file = await db.get_file_by_id(file_id)
    if file is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")

    path = storage.stored_path(file)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found.")
    return DownloadResponse(path, media_type=file.mimetype, filename=file.name)


route = Route(path="/files", router=router, position=2, middlewares=["auth"])
