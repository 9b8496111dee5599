"""Stage multipart image uploads on local disk before they are sent to the media host."""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles
from fastapi import UploadFile

from app.core.errors import BadRequestError

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".avif"})
CHUNK_SIZE = 64 * 1024


def _is_upload_file(obj: object) -> bool:
    """True if obj is an uploaded file (UploadFile or file-like with filename and read)."""
    if isinstance(obj, UploadFile):
        return True
    return (
        hasattr(obj, "read")
        and callable(getattr(obj, "read", None))
        and hasattr(obj, "filename")
    )


def _image_suffix(filename: str, content_type: str) -> str:
    ext = Path(filename).suffix.lower()
    if ext in ALLOWED_IMAGE_EXTENSIONS:
        return ext
    return mimetypes.guess_extension(content_type) or ""


def has_file(upload: object) -> bool:
    """True when a multipart field carries an actual file (browsers send empty parts)."""
    return _is_upload_file(upload) and bool(getattr(upload, "filename", None))


async def save_upload_to_temp(upload: UploadFile, field: str, settings: Settings) -> Path:
    """
    Write an uploaded image to UPLOAD_TEMP_DIR in chunks and return its path.

    The part must declare an image/* content type; the filename may lack an
    extension (browser Blobs arrive as "blob"), in which case the suffix is taken
    from the content type. Raises BadRequestError for non-image files or files above
    MAX_UPLOAD_FILE_BYTES; the partial file is removed in both cases.
    """
    content_type = (upload.content_type or "").split(";")[0].strip().lower()
    if not content_type.startswith("image/"):
        raise BadRequestError(f"{field} must be an image file")
    ext = _image_suffix(upload.filename or "", content_type)

    temp_dir = Path(settings.UPLOAD_TEMP_DIR)
    temp_dir.mkdir(parents=True, exist_ok=True)
    path = temp_dir / f"{uuid.uuid4().hex}{ext}"

    total = 0
    try:
        async with aiofiles.open(path, "wb") as f:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if not chunk:
                    break
                total += len(chunk)
                if total > settings.MAX_UPLOAD_FILE_BYTES:
                    raise BadRequestError(
                        f"{field} must not exceed {settings.MAX_UPLOAD_FILE_BYTES // 1024} KB"
                    )
                await f.write(chunk)
    except Exception:
        path.unlink(missing_ok=True)
        raise
    if total == 0:
        path.unlink(missing_ok=True)
        raise BadRequestError(f"{field} file is empty")
    logger.debug("Staged upload", extra={"field": field, "bytes": total})
    return path


def discard_temp_files(*paths: Path | None) -> None:
    """Remove staged files that were not consumed by an upload."""
    for path in paths:
        if path is not None:
            path.unlink(missing_ok=True)
