"""
Upload pipeline.

Turns local asset handles into durable blob references
(``{storagePath, downloadURL}``). A batch succeeds or fails as a whole: every
upload in the batch runs concurrently and settles, and if any of them failed
the blobs the others already wrote are removed again before the batch error
is raised.

The caller is responsible for device media permission; ``ensure_media_permission``
is the guard to run before any remote call.
"""

import asyncio
import base64
import binascii
import logging
import mimetypes
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, List, Mapping, Optional, Sequence
from urllib.parse import unquote, urlsplit

import httpx

from fieldops.schemas.ticket import PhotoReference
from fieldops.services.blob_paths import (
    inspection_report_path,
    report_path,
    sanitize_filename,
    timestamp_ms,
    with_suffix,
)
from fieldops.services.blob_store import BlobNotFoundError, BlobStore, BlobStoreError, UploadProgress

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


class MediaPermissionError(PermissionError):
    """Device media access was not granted."""


class AssetFetchError(Exception):
    """Local asset bytes could not be read."""


class UploadBatchError(Exception):
    """At least one asset of a batch failed; nothing from the batch was kept."""

    def __init__(self, message: str, errors: Sequence[BaseException]):
        super().__init__(message)
        self.errors = list(errors)


def ensure_media_permission(status: str) -> None:
    if status != "granted":
        raise MediaPermissionError("Camera roll permission is needed.")


@dataclass(frozen=True)
class LocalAsset:
    """Asset handle from the device picker."""

    uri: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping) -> "LocalAsset":
        return cls(
            uri=data["uri"],
            file_name=data.get("fileName") or data.get("file_name"),
            mime_type=data.get("mimeType") or data.get("mime_type"),
        )


class FilenameStrategy(str, Enum):
    """How the destination filename is derived."""

    UUID = "uuid"  # <uuid>.<ext>
    TIMESTAMP = "timestamp"  # <ms>_<asset name or ms.jpg>


def derive_filename(
    asset: LocalAsset,
    strategy: FilenameStrategy = FilenameStrategy.UUID,
    now: Optional[float] = None,
) -> str:
    name = sanitize_filename(asset.file_name) if asset.file_name else None
    if strategy == FilenameStrategy.TIMESTAMP:
        stamp = timestamp_ms(now)
        return f"{stamp}_{name or f'{stamp}.jpg'}"
    _, dot, ext = (name or "").rpartition(".")
    return f"{uuid.uuid4()}.{ext if dot and ext else 'jpg'}"


class AssetFetcher:
    """Reads asset bytes from ``data:`` URIs, local files and http(s) URLs."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self._client = client

    async def fetch(self, asset: LocalAsset) -> bytes:
        uri = asset.uri
        if uri.startswith("data:"):
            return self._decode_data_uri(uri)

        parts = urlsplit(uri)
        if parts.scheme in ("http", "https"):
            return await self._fetch_http(uri)
        if parts.scheme == "file":
            return await self._read_file(Path(unquote(parts.path)))
        if parts.scheme in ("", ):
            return await self._read_file(Path(uri))
        raise AssetFetchError(f"Unsupported asset URI scheme: {parts.scheme}")

    @staticmethod
    def _decode_data_uri(uri: str) -> bytes:
        header, _, payload = uri.partition(",")
        if ";base64" not in header:
            return unquote(payload).encode("utf-8")
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise AssetFetchError(f"Invalid base64 asset data: {e}") from e

    @staticmethod
    async def _read_file(path: Path) -> bytes:
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise AssetFetchError(f"Cannot read {path}: {e}") from e

    async def _fetch_http(self, uri: str) -> bytes:
        client = self._client or httpx.AsyncClient(timeout=30.0)
        try:
            response = await client.get(uri)
            response.raise_for_status()
            return response.content
        except httpx.HTTPError as e:
            raise AssetFetchError(f"Cannot fetch {uri}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()


def guess_content_type(asset: LocalAsset, filename: str) -> str:
    if asset.mime_type:
        return asset.mime_type
    if asset.uri.startswith("data:"):
        header = asset.uri[5:].split(",", 1)[0]
        media_type = header.split(";", 1)[0]
        if media_type:
            return media_type
    return mimetypes.guess_type(filename)[0] or "image/jpeg"


class UploadPipeline:
    """Uploads local assets and generated reports to the blob store."""

    def __init__(
        self,
        blob_store: BlobStore,
        fetcher: Optional[AssetFetcher] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.blob_store = blob_store
        self.fetcher = fetcher or AssetFetcher()
        self._clock = clock

    def destination(
        self,
        asset: LocalAsset,
        folder: str,
        strategy: FilenameStrategy = FilenameStrategy.UUID,
    ) -> str:
        filename = derive_filename(asset, strategy, now=self._clock())
        return f"{folder.strip('/')}/{filename}"

    def destinations(
        self,
        assets: Sequence[LocalAsset],
        folder: str,
        strategy: FilenameStrategy = FilenameStrategy.UUID,
    ) -> List[str]:
        """One distinct path per asset; a repeated path gets a ``_<n>`` suffix."""
        paths: List[str] = []
        for asset in assets:
            path = self.destination(asset, folder, strategy)
            candidate, n = path, 1
            while candidate in paths:
                candidate = with_suffix(path, n)
                n += 1
            paths.append(candidate)
        return paths

    async def stream_asset(self, asset: LocalAsset, path: str) -> AsyncIterator[UploadProgress]:
        """Upload one asset to ``path``, yielding byte-count progress events."""
        data = await self.fetcher.fetch(asset)
        content_type = guess_content_type(asset, path)
        async for progress in self.blob_store.upload_stream(path, data, content_type):
            yield progress

    async def upload_asset(
        self,
        asset: LocalAsset,
        folder: str,
        strategy: FilenameStrategy = FilenameStrategy.UUID,
    ) -> PhotoReference:
        return await self._upload_to(asset, self.destination(asset, folder, strategy))

    async def _upload_to(self, asset: LocalAsset, path: str) -> PhotoReference:
        final = None
        async for progress in self.stream_asset(asset, path):
            final = progress
        return PhotoReference(storage_path=final.path, download_url=final.download_url)

    async def upload_assets(
        self,
        assets: Sequence[LocalAsset],
        folder: str,
        strategy: FilenameStrategy = FilenameStrategy.UUID,
    ) -> List[PhotoReference]:
        """Upload every asset concurrently; all succeed or the batch fails."""
        if not assets:
            return []

        paths = self.destinations(assets, folder, strategy)
        results = await asyncio.gather(
            *(self._upload_to(asset, path) for asset, path in zip(assets, paths)),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if not errors:
            logger.info(f"Uploaded {len(results)} asset(s) to {folder}/")
            return list(results)

        uploaded = [r for r in results if isinstance(r, PhotoReference)]
        for error in errors:
            logger.warning(f"Asset upload to {folder}/ failed: {error}")
        await self.discard(uploaded)
        raise UploadBatchError(
            f"{len(errors)} of {len(assets)} upload(s) failed; batch discarded",
            errors,
        )

    async def discard(self, references: Sequence[PhotoReference]) -> None:
        if not references:
            return
        results = await asyncio.gather(
            *(self.blob_store.delete(ref.storage_path) for ref in references),
            return_exceptions=True,
        )
        for ref, result in zip(references, results):
            if isinstance(result, BlobNotFoundError):
                continue
            if isinstance(result, Exception):
                logger.warning(f"Could not discard {ref.storage_path} after failed batch: {result}")

    async def upload_report_pdf(self, ticket: Mapping, pdf: bytes) -> PhotoReference:
        """Store a ticket report at ``reports/<sanitized address>.pdf``."""
        path = report_path(ticket)
        url = await self._upload_bytes(path, pdf, PDF_CONTENT_TYPE)
        return PhotoReference(storage_path=path, download_url=url)

    async def upload_inspection_report(self, address: Optional[str], pdf: bytes) -> PhotoReference:
        path = inspection_report_path(address)
        url = await self._upload_bytes(path, pdf, PDF_CONTENT_TYPE)
        return PhotoReference(storage_path=path, download_url=url)

    async def _upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        try:
            return await self.blob_store.upload(path, data, content_type)
        except BlobStoreError:
            logger.error(f"Upload of {path} failed", exc_info=True)
            raise
