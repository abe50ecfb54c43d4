"""Blob storage backends for call recordings."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path

import httpx

from config.settings import Settings
from telephony.errors import StorageError

LOGGER = logging.getLogger(__name__)


class BlobStore(ABC):
    """Interface for recording upload targets."""

    @abstractmethod
    async def upload(
        self, name: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> None:
        """Store ``data`` under ``name``, replacing any existing object."""


class LocalBlobStore(BlobStore):
    """Writes blobs as files below a directory."""

    def __init__(self, root: Path) -> None:
        self._root = root

    async def upload(
        self, name: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> None:
        path = self._root / name
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class HttpBlobStore(BlobStore):
    """Uploads blobs to an object-storage REST API (Supabase Storage layout)."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._bucket = bucket
        self._client = client

    async def upload(
        self, name: str, data: bytes, *, content_type: str = "application/octet-stream"
    ) -> None:
        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{name}"
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "apikey": self._api_key,
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            if self._client is not None:
                response = await self._client.post(url, content=data, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=30) as client:
                    response = await client.post(url, content=data, headers=headers)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise StorageError(f"Upload of {name} failed: {exc}") from exc


def build_blob_store(settings: Settings) -> BlobStore:
    """Instantiate the configured recordings backend."""

    if settings.recordings_backend == "local":
        return LocalBlobStore(settings.recordings_dir)
    if settings.recordings_backend == "http":
        if not settings.storage_url or not settings.storage_api_key:
            raise ValueError("Storage URL and API key must be configured.")
        return HttpBlobStore(settings.storage_url, settings.storage_api_key, settings.storage_bucket)
    raise ValueError(f"Unsupported recordings_backend: {settings.recordings_backend}")
