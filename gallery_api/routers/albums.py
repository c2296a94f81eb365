"""
Albums router for album management, covers and downloads.
"""
import math
from typing import List, Literal, Optional

from fastapi import (
    APIRouter,
    Depends,
    File as FileField,
    HTTPException,
    Path,
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
from gallery_api.middlewares.rate_limit_middleware import limiter
from gallery_api.models import Album, File
from gallery_api.models.base import utcnow
from gallery_api.schemas.album import (
    ALBUM_FLAGS,
    AlbumCreate,
    AlbumList,
    AlbumResponse,
    AlbumUpdate,
    IdsBody,
)
from gallery_api.schemas.file import FileResponse
from gallery_api.services import storage
from gallery_api.services.database import Database, DuplicateNameError
from gallery_api.services.images import InvalidImageError, probe_image
from gallery_api.structures import Route, public
from gallery_api.utils.logger import log_info
from gallery_api.utils.prometheus_metrics import album_operations_total, file_operations_total

router = APIRouter(tags=["Albums"])
settings = get_settings()

MISSING_NAME = 'Missing "name" field from request body.'
NAME_TAKEN = "An album with that name already exists."


def to_response(album: Album, file_count: int = 0) -> AlbumResponse:
    response = AlbumResponse.model_validate(album)
    response.file_count = file_count
    return response


async def get_album_or_404(
    album_id: str = Path(..., max_length=64),
    db: Database = Depends(get_database),
) -> Album:
    """Path dependency resolving the album or answering 404."""
    album = await db.get_album_by_id(album_id)
    if album is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Album not found")
    return album


async def delete_album_cover(db: Database, album: Album) -> None:
    """Remove an uploaded cover (a file without album) together with its record."""
    if not album.cover_id:
        return
    cover = await db.get_file_by_id(album.cover_id)
    if cover is not None and cover.album_id is None:
        await db.delete_file(cover.id)
        storage.remove_file_assets(cover)


async def purge_album(db: Database, album: Album) -> int:
    """
    Remove everything owned by an album except the album row itself:
    archive, file records, files and thumbnails on disk, uploaded cover.
    Returns the number of album files removed.
    """
    storage.remove_path(storage.archive_path(album.name))
    files = await db.delete_album_files(album.id)
    for file in files:
        storage.remove_file_assets(file)
    await delete_album_cover(db, album)
    return len(files)


@router.get("", response_model=AlbumList, summary="List albums")
async def list_albums(
    album_status: Literal["all", "draft", "posted"] = Query("all", alias="status"),
    favorites: bool = False,
    featured: bool = False,
    search: Optional[str] = Query(None, max_length=255),
    sort: Literal["name", "created_at", "modified_at", "posted_at"] = "name",
    order: Literal["asc", "desc"] = "asc",
    page: int = Query(1, ge=1),
    limit: int = Query(25, ge=1, le=100),
    db: Database = Depends(get_database),
) -> AlbumList:
    """
    Filtered album listing.

    - **status**: all, draft or posted
    - **favorites** / **featured**: restrict to flagged albums
    - **search**: case-insensitive name search
    """
    filters = dict(status=album_status, favorites=favorites, featured=featured, search=search)
    count = await db.get_album_count(**filters)
    albums = await db.get_albums(**filters, sort=sort, order=order, skip=(page - 1) * limit, limit=limit)
    counts = await db.get_album_file_counts(album.id for album in albums)
    return AlbumList(
        data=[to_response(album, counts[album.id]) for album in albums],
        count=count,
        pages=math.ceil(count / limit),
    )


@router.post(
    "",
    response_model=AlbumResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new album",
)
@limiter.limit("5 per 15 seconds")
async def create_album(
    request: Request,
    album_data: AlbumCreate,
    db: Database = Depends(get_database),
) -> AlbumResponse:
    """
    Create an album.

    - **name**: Album name (required, unique regardless of case)
    - flags default to false; a non-draft album is posted immediately
    """
    if album_data.name is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_NAME)

    if await db.find_album_by_name(album_data.name) is not None:
        album_operations_total.labels(operation="create", result="conflict").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=NAME_TAKEN)

    now = utcnow()
    flags = {flag: bool(getattr(album_data, flag)) for flag in ALBUM_FLAGS}
    album = Album(
        name=album_data.name,
        cover_id=None,
        cover_fallback_id=None,
        posted_at=None if flags["draft"] else now,
        created_at=now,
        modified_at=now,
        **flags,
    )

    try:
        album = await db.insert_album(album)
    except DuplicateNameError:
        album_operations_total.labels(operation="create", result="conflict").inc()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=NAME_TAKEN)

    album_operations_total.labels(operation="create", result="success").inc()
    log_info("Album created", event="albums", album_id=album.id)
    return to_response(album)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT, summary="Delete several albums")
async def delete_albums(
    body: IdsBody,
    db: Database = Depends(get_database),
) -> Response:
    """Delete albums with their files and archives. Nothing is deleted if an id is unknown."""
    albums: List[Album] = []
    for album_id in body.ids:
        album = await db.get_album_by_id(album_id)
        if album is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Album '{album_id}' not found")
        albums.append(album)

    for album in albums:
        await purge_album(db, album)
    await db.delete_albums([album.id for album in albums])

    album_operations_total.labels(operation="delete", result="success").inc(len(albums))
    log_info("Albums deleted", event="albums", count=len(albums))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{album_id}", response_model=AlbumResponse, summary="Get an album")
async def get_album(
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> AlbumResponse:
    return to_response(album, await db.get_album_file_count(album.id))


@router.get("/{album_id}/files", response_model=List[FileResponse], summary="Files of an album")
async def get_album_files(
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> List[File]:
    return await db.get_album_files(album.id)


@router.put("/{album_id}", response_model=AlbumResponse, summary="Update an album")
async def update_album(
    album_data: AlbumUpdate,
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> AlbumResponse:
    """
    Update name and flags.

    Omitted flags keep their value. Publishing a draft stamps posted_at, and a
    rename moves the album archive.
    """
    if album_data.name is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_NAME)

    fields = {}
    if album_data.name != album.name:
        if album_data.name.lower() != album.name.lower():
            if await db.find_album_by_name(album_data.name) is not None:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=NAME_TAKEN)
        fields["name"] = album_data.name

    for flag in ALBUM_FLAGS:
        value = getattr(album_data, flag)
        if value is not None and value != getattr(album, flag):
            fields[flag] = value

    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes were made to the album.")

    now = utcnow()
    if fields.get("draft") is False:
        fields["posted_at"] = now
    fields["modified_at"] = now

    old_name = album.name
    try:
        await db.update_album(album.id, fields)
    except DuplicateNameError:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=NAME_TAKEN)

    if "name" in fields:
        storage.rename_archive(old_name, fields["name"])

    album_operations_total.labels(operation="update", result="success").inc()
    log_info("Album updated", event="albums", album_id=album.id, fields=sorted(fields))

    updated = await db.get_album_by_id(album.id)
    return to_response(updated, await db.get_album_file_count(album.id))


@router.delete("/{album_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an album")
async def delete_album(
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> Response:
    """Delete the album, its archive, its files and their thumbnails."""
    removed = await purge_album(db, album)
    await db.delete_album(album.id)

    album_operations_total.labels(operation="delete", result="success").inc()
    log_info("Album deleted", event="albums", album_id=album.id, files=removed)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{album_id}/cover/upload", response_class=PlainTextResponse, summary="Upload an album cover")
async def upload_cover(
    file: UploadFile = FileField(...),
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> PlainTextResponse:
    """
    Store an image in covers/ and make it the album cover.
    Uploading the current cover again changes nothing.
    """
    try:
        name = storage.safe_filename(file.filename)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file was uploaded.")

    existing = await db.find_file_by_name(name)
    if existing is not None:
        if existing.id in (album.cover_id, album.cover_fallback_id):
            return PlainTextResponse(name)
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A file with this name already exists.")

    destination = storage.cover_path(name)
    try:
        size = await storage.save_upload(file, destination, settings.max_upload_size)
    except storage.UploadTooLargeError:
        file_operations_total.labels(operation="cover_upload", result="too_large").inc()
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="File too large.")

    try:
        info = await run_in_threadpool(probe_image, destination)
    except InvalidImageError:
        storage.remove_path(destination)
        file_operations_total.labels(operation="cover_upload", result="invalid").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The uploaded file is not a valid image.")

    # replaces a previously uploaded cover
    await delete_album_cover(db, album)

    now = utcnow()
    cover = await db.insert_file(
        File(
            name=name,
            extname=storage.extension(name),
            type=info.format,
            size=size,
            width=info.width,
            height=info.height,
            album_id=None,
            created_at=now,
            modified_at=now,
        )
    )
    await db.update_album(album.id, {"cover_id": cover.id, "modified_at": now})

    file_operations_total.labels(operation="cover_upload", result="success").inc()
    log_info("Album cover uploaded", event="albums", album_id=album.id, file_id=cover.id)
    return PlainTextResponse(name)


@router.delete(
    "/{album_id}/cover/upload",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove the album cover",
)
async def delete_cover(
    request: Request,
    album: Album = Depends(get_album_or_404),
    db: Database = Depends(get_database),
) -> Response:
    """
    Delete the uploaded cover named in the text body.
    The fallback cover (an album file) is left untouched.
    """
    try:
        name = storage.safe_filename((await request.body()).decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")

    image = await db.find_file_by_name(name)
    if image is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Image not found.")

    if image.id == album.cover_fallback_id:
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    if image.album_id is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only uploaded covers can be removed here.")

    await db.delete_file(image.id)
    storage.remove_file_assets(image)
    if album.cover_id == image.id:
        await db.update_album(album.id, {"cover_id": None, "modified_at": utcnow()})

    file_operations_total.labels(operation="cover_delete", result="success").inc()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{album_id}/download", summary="Download the album archive")
@public
async def download_album(album: Album = Depends(get_album_or_404)) -> DownloadResponse:
    path = storage.archive_path(album.name)
    if not path.is_file():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Archive not found.")
    return DownloadResponse(path, media_type="application/zip", filename=f"{album.name}.zip")


route = Route(path="/albums", router=router, position=2, middlewares=["auth"])
