"""
Object storage clients for product archives.

Every backend exposes the same read-only contract: ``get(key)`` returns a
StoredObject whose body streams without buffering the whole archive, or None
when the key is absent. Transport failures raise StorageBackendError.
"""

import httpx
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from stat import S_ISREG
from typing import AsyncIterator, BinaryIO, Dict, Any, Iterator, Optional
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class StorageBackendError(Exception):
    """Raised when the storage backend cannot be reached or fails the read."""
    pass


@dataclass
class StoredObject:
    """A present object: its key, streamed body and size when known."""
    key: str
    body: AsyncIterator[bytes]
    size: Optional[int] = None


class ObjectStore:
    """Base class for read-only key -> byte stream stores."""

    backend_name = "base"

    async def get(self, key: str) -> Optional[StoredObject]:
        raise NotImplementedError

    def get_configuration(self) -> Dict[str, Any]:
        return {"storage_backend": self.backend_name}

    async def cleanup(self):
        """Release backend resources."""
        return None


class LocalObjectStore(ObjectStore):
    """Objects stored as files under a root directory, keyed by relative path."""

    backend_name = "local"

    def __init__(self, root: Path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.root = Path(root).resolve()
        self._chunk_size = chunk_size
        logger.info(f"LocalObjectStore serving from {self.root}")

    def _path_for(self, key: str) -> Optional[Path]:
        candidate = (self.root / key).resolve()
        if candidate != self.root and self.root not in candidate.parents:
            logger.warning(f"Rejected storage key outside root: {key!r}")
            return None
        return candidate

    def _read_chunks(self, handle: BinaryIO) -> Iterator[bytes]:
        try:
            while True:
                chunk = handle.read(self._chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def get(self, key: str) -> Optional[StoredObject]:
        path = self._path_for(key)
        if path is None:
            return None

        # Opened here, so open errors surface before any response is committed
        try:
            handle = await run_in_threadpool(open, path, "rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            return None
        except OSError as e:
            raise StorageBackendError(f"Unable to open {key}: {e}") from e

        try:
            stat = os.fstat(handle.fileno())
        except OSError as e:
            handle.close()
            raise StorageBackendError(f"Unable to stat {key}: {e}") from e

        if not S_ISREG(stat.st_mode):
            handle.close()
            return None

        return StoredObject(
            key=key,
            body=iterate_in_threadpool(self._read_chunks(handle)),
            size=stat.st_size
        )

    def get_configuration(self) -> Dict[str, Any]:
        return {"storage_backend": self.backend_name, "root": str(self.root)}


class HttpObjectStore(ObjectStore):
    """
    Objects served by an internal object-storage HTTP service.

    ``GET {base_url}/{key}`` streams the object; 404 means absent.
    """

    backend_name = "http"

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None,
                 chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._chunk_size = chunk_size
        self._http_client = http_client or self._create_http_client()
        logger.info(f"HttpObjectStore initialized for {self.base_url}")

    def _create_http_client(self) -> httpx.AsyncClient:
        """Create HTTP client for internal storage service communication."""
        limits = httpx.Limits(
            max_connections=100,
            max_keepalive_connections=20
        )

        # Long read timeout for large archives
        timeout = httpx.Timeout(
            connect=10.0,
            read=300.0,
            write=30.0,
            pool=10.0
        )

        return httpx.AsyncClient(
            limits=limits,
            timeout=timeout,
            follow_redirects=True
        )

    def get_http_client(self) -> httpx.AsyncClient:
        """Get the HTTP client for testing."""
        return self._http_client

    def build_object_url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key)}"

    def _headers(self) -> Dict[str, str]:
        if self._api_key:
            return {"x-api-key": self._api_key}
        return {}

    async def get(self, key: str) -> Optional[StoredObject]:
        request = self._http_client.build_request("GET", self.build_object_url(key), headers=self._headers())

        try:
            response = await self._http_client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise StorageBackendError(f"Storage service unreachable: {e}") from e

        if response.status_code == 404:
            await response.aclose()
            return None

        if response.status_code != 200:
            await response.aclose()
            raise StorageBackendError(f"Storage service returned HTTP {response.status_code} for {key}")

        content_length = response.headers.get("Content-Length")

        async def stream_generator():
            try:
                async for chunk in response.aiter_bytes(chunk_size=self._chunk_size):
                    yield chunk
            finally:
                await response.aclose()

        return StoredObject(
            key=key,
            body=stream_generator(),
            size=int(content_length) if content_length and content_length.isdigit() else None
        )

    def get_configuration(self) -> Dict[str, Any]:
        return {"storage_backend": self.backend_name, "base_url": self.base_url}

    async def cleanup(self):
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()
        logger.info("HttpObjectStore cleanup completed")


class S3ObjectStore(ObjectStore):
    """Objects in an S3-compatible bucket (AWS S3, Cloudflare R2, MinIO)."""

    backend_name = "s3"

    MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}

    def __init__(self, bucket: str, client=None, chunk_size: int = DEFAULT_CHUNK_SIZE, **client_kwargs):
        self.bucket = bucket
        self._chunk_size = chunk_size
        self._client = client or boto3.client(
            "s3",
            **{k: v for k, v in client_kwargs.items() if v}
        )
        logger.info(f"S3ObjectStore initialized for bucket {bucket}")

    def _get_object(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            return self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in self.MISSING_KEY_CODES:
                return None
            raise StorageBackendError(f"S3 get_object failed for {key}: {code}") from e
        except BotoCoreError as e:
            raise StorageBackendError(f"S3 unreachable: {e}") from e

    def _read_chunks(self, body) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=self._chunk_size):
                yield chunk
        finally:
            body.close()

    async def get(self, key: str) -> Optional[StoredObject]:
        result = await run_in_threadpool(self._get_object, key)
        if result is None:
            return None

        return StoredObject(
            key=key,
            body=iterate_in_threadpool(self._read_chunks(result["Body"])),
            size=result.get("ContentLength")
        )

    def get_configuration(self) -> Dict[str, Any]:
        return {"storage_backend": self.backend_name, "bucket": self.bucket}


def create_object_store(config_manager) -> ObjectStore:
    """Build the object store selected by STORAGE_BACKEND."""
    backend = config_manager.storage_backend

    if backend == "local":
        return LocalObjectStore(config_manager.storage_root)
    if backend == "http":
        return HttpObjectStore(config_manager.storage_url, api_key=config_manager.storage_api_key)

    settings = dict(config_manager.s3_settings)
    bucket = settings.pop("bucket")
    return S3ObjectStore(bucket, **settings)
