"""Media host client: upload local files to Cloudinary and delete them by public id."""

from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import aiofiles
import httpx

from app.core.config import get_settings

if TYPE_CHECKING:
    from app.core.config import Settings

logger = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"

# Params that Cloudinary excludes from the request signature.
UNSIGNED_PARAMS = frozenset({"file", "api_key", "resource_type", "cloud_name"})


class MediaStoreError(Exception):
    """Raised when the media host rejects a request or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class MediaStoreNotConfiguredError(MediaStoreError):
    """Raised when an upload or delete is attempted without media host credentials."""


@dataclass(frozen=True)
class MediaAsset:
    """A stored file: durable URL plus the identifier needed to delete it."""

    url: str
    public_id: str


class MediaStore(Protocol):
    async def upload(self, local_path: Path) -> MediaAsset: ...

    async def delete(self, public_id: str) -> bool: ...


def is_media_configured(settings: Settings) -> bool:
    if not settings.CLOUDINARY_CLOUD_NAME or not settings.CLOUDINARY_CLOUD_NAME.strip():
        return False
    if not settings.CLOUDINARY_API_KEY or not settings.CLOUDINARY_API_KEY.strip():
        return False
    if settings.CLOUDINARY_API_SECRET is None:
        return False
    secret = settings.CLOUDINARY_API_SECRET.get_secret_value()
    return bool(secret and secret.strip())


def sign_params(params: dict[str, Any], api_secret: str) -> str:
    """Cloudinary signature: SHA-1 of sorted 'k=v' pairs joined by '&', followed by the secret."""
    to_sign = "&".join(
        f"{k}={params[k]}"
        for k in sorted(params)
        if k not in UNSIGNED_PARAMS and params[k] not in (None, "")
    )
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
        error = body.get("error", {})
        detail = error.get("message") if isinstance(error, dict) else None
        return detail or json.dumps(body)[:500]
    except Exception:
        return resp.text[:500] if resp.text else "Unknown error"


class CloudinaryMediaStore:
    """
    Upload API client for Cloudinary using signed requests.

    The local file is always removed after an upload attempt (success or failure);
    it is only a staging copy of the multipart upload.
    """

    def __init__(self, settings: Settings) -> None:
        self.configured = is_media_configured(settings)
        self.cloud_name = (settings.CLOUDINARY_CLOUD_NAME or "").strip()
        self.api_key = (settings.CLOUDINARY_API_KEY or "").strip()
        self.api_secret = (
            settings.CLOUDINARY_API_SECRET.get_secret_value()
            if settings.CLOUDINARY_API_SECRET is not None
            else ""
        )
        self.folder = (settings.CLOUDINARY_FOLDER or "").strip() or None
        self.timeout = max(1.0, min(300.0, settings.MEDIA_REQUEST_TIMEOUT_SEC))

    def _require_configured(self) -> None:
        if not self.configured:
            raise MediaStoreNotConfiguredError(
                "Media store is not configured; set CLOUDINARY_CLOUD_NAME, "
                "CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET."
            )

    def _signed(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {k: str(v) for k, v in params.items() if v not in (None, "")}
        params["timestamp"] = str(int(time.time()))
        params["signature"] = sign_params(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    def _url(self, resource_type: str, action: str) -> str:
        return f"{CLOUDINARY_API_BASE}/{self.cloud_name}/{resource_type}/{action}"

    async def upload(self, local_path: Path) -> MediaAsset:
        """Upload local_path (resource type detected by the host). Raises MediaStoreError."""
        local_path = Path(local_path)
        try:
            self._require_configured()
            if not local_path.is_file():
                raise MediaStoreError(f"Local file not found: {local_path.name}")
            data = self._signed({"folder": self.folder})
            async with aiofiles.open(local_path, "rb") as f:
                content = await f.read()
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                try:
                    resp = await client.post(
                        self._url("auto", "upload"),
                        data=data,
                        files={"file": (local_path.name, content)},
                    )
                except httpx.HTTPError as e:
                    raise MediaStoreError(f"Media host unreachable: {e!s}") from e
            if resp.status_code >= 400:
                raise MediaStoreError(
                    f"Media host returned {resp.status_code}: {_error_detail(resp)}",
                    resp.status_code,
                )
            body = resp.json()
            url = body.get("secure_url") or body.get("url")
            public_id = body.get("public_id")
            if not url or not public_id:
                raise MediaStoreError("Media host response missing url or public_id.")
            logger.info("Uploaded file to media host", extra={"public_id": public_id})
            return MediaAsset(url=url, public_id=public_id)
        finally:
            local_path.unlink(missing_ok=True)

    async def delete(self, public_id: str) -> bool:
        """Destroy an image by public id. Returns True if the host reports it deleted."""
        self._require_configured()
        data = self._signed({"public_id": public_id})
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.post(self._url("image", "destroy"), data=data)
            except httpx.HTTPError as e:
                raise MediaStoreError(f"Media host unreachable: {e!s}") from e
        if resp.status_code >= 400:
            raise MediaStoreError(
                f"Media host returned {resp.status_code}: {_error_detail(resp)}",
                resp.status_code,
            )
        result = resp.json().get("result")
        logger.info("Deleted file from media host", extra={"public_id": public_id, "result": result})
        return result == "ok"


def get_media_store() -> MediaStore:
    """Dependency returning the media store built from current settings."""
    return CloudinaryMediaStore(get_settings())
