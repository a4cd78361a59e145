"""Upload pipeline: multipart part -> temp file -> media host -> URL.

Routes stage the incoming part with ``stage_upload`` (which always removes
its temp file), push it with ``publish_upload``, and only then write the
returned URL to the database. Downloads go back out through
``proxy_download``.
"""

import logging
import mimetypes
import os
import re
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Optional, Set
from urllib.parse import urlparse

from fastapi import HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import StreamingResponse
from werkzeug.utils import secure_filename

from config import get_settings
from media import MediaHost, MediaHostError, UploadedMedia

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".webm", ".avi"}

PHOTO_EXTENSIONS = {".jpg", ".jpeg", ".png"}
MATERIAL_EXTENSIONS = {".pdf", ".doc", ".docx", ".ppt", ".pptx", ".jpg", ".jpeg", ".png"}
PDF_EXTENSIONS = {".pdf"}
FLYER_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".pdf"}

PHOTO_FOLDER = "profile-photos"

# Portraits are capped at 500x500 and re-encoded by the host.
PHOTO_TRANSFORMATION = [{"width": 500, "height": 500, "crop": "limit", "quality": "auto", "fetch_format": "auto"}]
MATERIAL_FOLDER = "course-materials"
PUBLICATION_FOLDER = "publications"
FLYER_FOLDER = "talk-flyers"


@dataclass
class StagedFile:
    path: str
    filename: str
    content_type: str
    size: int


def resource_type_for(filename: str, content_type: Optional[str] = None) -> str:
    """Pick the media host's resource kind: image, video or raw."""
    ext = os.path.splitext(filename)[1].lower()
    mime = (content_type or "").lower()
    if mime == "application/pdf" or ext == ".pdf":
        # PDFs uploaded as images get rasterised by the host.
        return "raw"
    if mime.startswith("image/") or ext in IMAGE_EXTENSIONS:
        return "image"
    if mime.startswith("video/") or ext in VIDEO_EXTENSIONS:
        return "video"
    return "raw"


def _megabytes(num_bytes: int) -> int:
    return max(1, num_bytes // (1024 * 1024))


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove temporary upload {path}: {e}")


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


@asynccontextmanager
async def stage_upload(upload: Optional[UploadFile], max_bytes: int, allowed_extensions: Set[str]):
    """Buffer ``upload`` to a temp file, yielding a StagedFile.

    Rejects missing, empty, oversized, or disallowed files before anything
    leaves the server. The temp file is removed on every exit path.
    """
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in allowed_extensions:
        allowed = ", ".join(sorted(e.lstrip(".").upper() for e in allowed_extensions))
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed: {allowed}.")

    # Non-ASCII stems sanitise away entirely; keep the extension regardless.
    stem = secure_filename(os.path.splitext(upload.filename)[0])
    filename = f"{stem or 'upload'}{ext}"

    upload_dir = get_settings().upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    fd, path = tempfile.mkstemp(dir=upload_dir, suffix=ext)
    try:
        size = 0
        with os.fdopen(fd, "wb") as buffer:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > max_bytes:
                    raise HTTPException(
                        status_code=413,
                        detail=f"File too large. Max size is {_megabytes(max_bytes)} MB.",
                    )
                await run_in_threadpool(buffer.write, chunk)

        if size == 0:
            raise HTTPException(status_code=400, detail="Uploaded file is empty.")

        content_type = upload.content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream"
        yield StagedFile(path=path, filename=filename, content_type=content_type, size=size)
    finally:
        _remove_quietly(path)


async def publish_upload(media: MediaHost, staged: StagedFile, folder: str, **options) -> UploadedMedia:
    data = await run_in_threadpool(_read_file, staged.path)
    resource_type = resource_type_for(staged.filename, staged.content_type)
    logger.info(f"Uploading {staged.filename} ({staged.size} bytes) to {folder} as {resource_type}")
    try:
        uploaded = await run_in_threadpool(media.upload, data, folder, staged.filename, resource_type, **options)
    except MediaHostError as e:
        logger.error(f"Media host upload failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to upload file")
    logger.info(f"Uploaded {staged.filename} -> {uploaded.url}")
    return uploaded


# ----------------- Downloads -----------------
def clean_name(name: str, fallback: str = "download") -> str:
    safe_name = re.sub(r"[^a-zA-Z0-9._-]+", "-", name).strip("-")
    return safe_name or fallback


def attachment_filename(title: str, url: str, stored_name: Optional[str] = None) -> str:
    ext = os.path.splitext(stored_name or "")[1] or os.path.splitext(urlparse(url).path)[1]
    base = clean_name(title)
    if ext and not base.lower().endswith(ext.lower()):
        base = f"{base}{ext.lower()}"
    return base


async def proxy_download(media: MediaHost, url: str, filename: str) -> StreamingResponse:
    """Stream a hosted file back to the client as an attachment named ``filename``."""
    try:
        remote = await media.fetch(url)
    except MediaHostError as e:
        logger.error(f"Media host download failed: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch file")

    media_type = remote.content_type
    guessed = mimetypes.guess_type(filename)[0]
    if guessed and media_type.startswith(("application/octet-stream", "binary/")):
        media_type = guessed
    return StreamingResponse(
        remote.chunks,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
