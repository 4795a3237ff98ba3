"""
Blob store backends.

All backends share one chunked upload protocol. ``upload_stream`` is an async
generator of ``UploadProgress`` events; the last event carries the download
URL. Closing the stream before that event aborts the partial upload.

Usage:
    store = create_blob_store(settings)

    async for progress in store.upload_stream("reports/a.pdf", pdf_bytes):
        print(progress.bytes_transferred, progress.total_bytes)

    url = await store.upload("images/1-photo.jpg", jpeg_bytes)
    await store.delete("images/1-photo.jpg")
"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Set
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 256 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class BlobStoreError(Exception):
    """Blob store operation failed."""


class BlobNotFoundError(BlobStoreError):
    """Blob does not exist (already deleted or never written)."""


@dataclass(frozen=True)
class UploadProgress:
    """Byte-count event of one upload."""

    path: str
    bytes_transferred: int
    total_bytes: int
    download_url: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.download_url is not None

    @property
    def fraction(self) -> float:
        if not self.total_bytes:
            return 1.0 if self.done else 0.0
        return self.bytes_transferred / self.total_bytes


def firebase_download_url(base_url: str, bucket: str, path: str, token: Optional[str] = None) -> str:
    """Public URL in the ``/v0/b/<bucket>/o/<encoded path>?alt=media`` scheme."""
    url = f"{base_url.rstrip('/')}/v0/b/{bucket}/o/{quote(path, safe='')}?alt=media"
    if token:
        url += f"&token={token}"
    return url


class BlobStore:
    """Base class for blob store backends."""

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = max(1, chunk_size)

    async def upload_stream(
        self,
        path: str,
        data: bytes,
        content_type: Optional[str] = None,
    ) -> AsyncIterator[UploadProgress]:
        """Upload ``data`` to ``path`` chunk by chunk, yielding progress events."""
        total = len(data)
        handle = await self._begin_upload(path, total, content_type or DEFAULT_CONTENT_TYPE)
        completed = False
        try:
            offset = 0
            while True:
                chunk = data[offset:offset + self.chunk_size]
                final = offset + len(chunk) >= total
                await self._upload_chunk(handle, chunk, offset, final)
                offset += len(chunk)
                if final:
                    break
                yield UploadProgress(path, offset, total)

            url = await self._finish_upload(handle)
            completed = True
            yield UploadProgress(path, total, total, url)
        finally:
            if not completed:
                logger.info(f"Aborting partial upload of {path}")
                await self._abort_upload(handle)

    async def upload(self, path: str, data: bytes, content_type: Optional[str] = None) -> str:
        """Upload and return the download URL."""
        url = None
        async for progress in self.upload_stream(path, data, content_type):
            if progress.done:
                url = progress.download_url
        return url

    async def _begin_upload(self, path: str, total: int, content_type: str) -> Any:
        raise NotImplementedError

    async def _upload_chunk(self, handle: Any, chunk: bytes, offset: int, final: bool) -> None:
        raise NotImplementedError

    async def _finish_upload(self, handle: Any) -> str:
        raise NotImplementedError

    async def _abort_upload(self, handle: Any) -> None:
        raise NotImplementedError

    async def delete(self, path: str) -> None:
        raise NotImplementedError

    async def download(self, path: str) -> bytes:
        raise NotImplementedError

    def download_url(self, path: str) -> str:
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources."""
        return None


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store (development and single-host deployments)."""

    def __init__(
        self,
        root: str,
        bucket: str = "local",
        public_base_url: str = "http://localhost:8000/blobs",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(chunk_size)
        self.root = Path(root)
        self.bucket = bucket
        self.public_base_url = public_base_url

    def _resolve(self, path: str) -> Path:
        parts = Path(path).parts
        if not path or Path(path).is_absolute() or ".." in parts:
            raise BlobStoreError(f"Invalid blob path: {path!r}")
        return self.root / path

    def download_url(self, path: str) -> str:
        return firebase_download_url(self.public_base_url, self.bucket, path)

    async def _begin_upload(self, path: str, total: int, content_type: str) -> Dict[str, Any]:
        target = self._resolve(path)
        temp = target.with_name(f".{target.name}.{uuid.uuid4().hex[:8]}.part")

        def _open():
            target.parent.mkdir(parents=True, exist_ok=True)
            return open(temp, "wb")

        handle = await asyncio.to_thread(_open)
        return {"path": path, "target": target, "temp": temp, "file": handle}

    async def _upload_chunk(self, handle: Dict[str, Any], chunk: bytes, offset: int, final: bool) -> None:
        if chunk:
            await asyncio.to_thread(handle["file"].write, chunk)

    async def _finish_upload(self, handle: Dict[str, Any]) -> str:
        def _commit():
            handle["file"].close()
            os.replace(handle["temp"], handle["target"])

        await asyncio.to_thread(_commit)
        return self.download_url(handle["path"])

    async def _abort_upload(self, handle: Dict[str, Any]) -> None:
        def _discard():
            handle["file"].close()
            handle["temp"].unlink(missing_ok=True)

        await asyncio.to_thread(_discard)

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            raise BlobNotFoundError(path)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete {path}: {e}") from e

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except FileNotFoundError:
            raise BlobNotFoundError(path)


class FirebaseBlobStore(BlobStore):
    """Firebase Storage REST client (resumable upload protocol)."""

    def __init__(
        self,
        bucket: str,
        base_url: str = "https://firebasestorage.googleapis.com",
        auth_token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(chunk_size)
        self.bucket = bucket
        self.base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._client = client or httpx.AsyncClient(timeout=60.0)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Firebase {self._auth_token}"
        if extra:
            headers.update(extra)
        return headers

    def _object_url(self, path: str) -> str:
        return f"{self.base_url}/v0/b/{self.bucket}/o/{quote(path, safe='')}"

    def download_url(self, path: str) -> str:
        return firebase_download_url(self.base_url, self.bucket, path)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise BlobStoreError(f"{method} {url} failed: {e}") from e
        if response.status_code == 404:
            raise BlobNotFoundError(url)
        if response.is_error:
            raise BlobStoreError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    async def _begin_upload(self, path: str, total: int, content_type: str) -> Dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self.base_url}/v0/b/{self.bucket}/o",
            params={"name": path},
            headers=self._headers({
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(total),
                "X-Goog-Upload-Header-Content-Type": content_type,
            }),
            json={"name": path, "contentType": content_type},
        )
        upload_url = response.headers.get("X-Goog-Upload-URL")
        if not upload_url:
            raise BlobStoreError(f"No resumable upload URL returned for {path}")
        return {"path": path, "upload_url": upload_url, "metadata": None}

    async def _upload_chunk(self, handle: Dict[str, Any], chunk: bytes, offset: int, final: bool) -> None:
        response = await self._request(
            "POST",
            handle["upload_url"],
            headers=self._headers({
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "upload, finalize" if final else "upload",
                "X-Goog-Upload-Offset": str(offset),
            }),
            content=chunk,
        )
        if final:
            handle["metadata"] = response.json()

    async def _finish_upload(self, handle: Dict[str, Any]) -> str:
        metadata = handle["metadata"] or {}
        token = (metadata.get("downloadTokens") or "").split(",")[0] or None
        return firebase_download_url(self.base_url, self.bucket, handle["path"], token)

    async def _abort_upload(self, handle: Dict[str, Any]) -> None:
        try:
            await self._request(
                "POST",
                handle["upload_url"],
                headers=self._headers({
                    "X-Goog-Upload-Protocol": "resumable",
                    "X-Goog-Upload-Command": "cancel",
                }),
            )
        except BlobStoreError as e:
            logger.warning(f"Could not cancel upload of {handle['path']}: {e}")

    async def delete(self, path: str) -> None:
        try:
            await self._request("DELETE", self._object_url(path), headers=self._headers())
        except BlobNotFoundError:
            raise BlobNotFoundError(path)

    async def download(self, path: str) -> bytes:
        try:
            response = await self._request(
                "GET", self._object_url(path), params={"alt": "media"}, headers=self._headers()
            )
        except BlobNotFoundError:
            raise BlobNotFoundError(path)
        return response.content

    async def close(self) -> None:
        await self._client.aclose()


def _matches(path: str, patterns: Set[str]) -> bool:
    return any(fnmatchcase(path, pattern) for pattern in patterns)


class MemoryBlobStore(BlobStore):
    """In-process blob store for tests and offline development.

    Records every upload/delete attempt and can simulate failures for
    selected paths. ``fail_uploads`` and ``fail_deletes`` hold exact paths or
    ``fnmatch`` patterns.
    """

    def __init__(
        self,
        bucket: str = "memory",
        public_base_url: str = "https://firebasestorage.googleapis.com",
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        super().__init__(chunk_size)
        self.bucket = bucket
        self.public_base_url = public_base_url
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.uploads: List[str] = []
        self.deletes: List[str] = []
        self.aborted: List[str] = []
        self.fail_uploads: Set[str] = set()
        self.fail_deletes: Set[str] = set()

    def download_url(self, path: str) -> str:
        return firebase_download_url(self.public_base_url, self.bucket, path)

    async def _begin_upload(self, path: str, total: int, content_type: str) -> Dict[str, Any]:
        self.uploads.append(path)
        if _matches(path, self.fail_uploads):
            raise BlobStoreError(f"Simulated upload failure for {path}")
        return {"path": path, "buffer": bytearray(), "content_type": content_type}

    async def _upload_chunk(self, handle: Dict[str, Any], chunk: bytes, offset: int, final: bool) -> None:
        handle["buffer"].extend(chunk)
        await asyncio.sleep(0)

    async def _finish_upload(self, handle: Dict[str, Any]) -> str:
        path = handle["path"]
        self.objects[path] = bytes(handle["buffer"])
        self.content_types[path] = handle["content_type"]
        return self.download_url(path)

    async def _abort_upload(self, handle: Dict[str, Any]) -> None:
        self.aborted.append(handle["path"])

    async def delete(self, path: str) -> None:
        self.deletes.append(path)
        await asyncio.sleep(0)
        if _matches(path, self.fail_deletes):
            raise BlobStoreError(f"Simulated delete failure for {path}")
        if path not in self.objects:
            raise BlobNotFoundError(path)
        del self.objects[path]
        self.content_types.pop(path, None)

    async def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise BlobNotFoundError(path)
        return self.objects[path]


def create_blob_store(settings) -> BlobStore:
    """Build the blob store selected by ``settings.BLOB_BACKEND``."""
    backend = settings.BLOB_BACKEND
    if backend == "firebase":
        logger.info(f"Using Firebase blob store (bucket {settings.BLOB_BUCKET})")
        return FirebaseBlobStore(
            bucket=settings.BLOB_BUCKET,
            base_url=settings.BLOB_PUBLIC_BASE_URL,
            auth_token=settings.BLOB_AUTH_TOKEN,
            chunk_size=settings.UPLOAD_CHUNK_SIZE,
        )
    if backend == "memory":
        logger.warning("Using in-memory blob store; blobs are lost on restart")
        return MemoryBlobStore(
            bucket=settings.BLOB_BUCKET,
            public_base_url=settings.BLOB_PUBLIC_BASE_URL,
            chunk_size=settings.UPLOAD_CHUNK_SIZE,
        )
    logger.info(f"Using local blob store at {settings.BLOB_LOCAL_ROOT}")
    return LocalBlobStore(
        root=settings.BLOB_LOCAL_ROOT,
        bucket=settings.BLOB_BUCKET,
        public_base_url=settings.BLOB_PUBLIC_BASE_URL,
        chunk_size=settings.UPLOAD_CHUNK_SIZE,
    )
