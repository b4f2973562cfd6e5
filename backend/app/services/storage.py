"""
Blob storage for uploaded files.

Files are addressed by a storage path such as
``pdfs/{workspace_id}/{timestamp}-{filename}`` which is recorded in the
content's metadata bag (``storagePath``). Two backends share one interface:

- local: maps the path under ``BLOB_STORAGE_DIR`` (development and tests)
- s3: uses the path as the object key in ``S3_BUCKET`` on any S3-compatible
  endpoint (AWS, MinIO)

``BLOB_BACKEND`` selects one. Blocking I/O runs in a worker thread.
"""

import asyncio
import logging
import os
import re
import time
from pathlib import Path
from typing import Optional

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings

logger = logging.getLogger(__name__)


class BlobStorageError(Exception):
    """Base exception for blob storage errors."""
    pass


class BlobNotFound(BlobStorageError):
    """Raised when a storage path has no stored bytes."""
    pass


def safe_filename(filename: Optional[str]) -> str:
    """Strip path parts and characters that are unsafe in object keys."""
    name = os.path.basename((filename or "").replace("\\", "/")) or "upload.pdf"
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", name).strip("._")
    return name or "upload.pdf"


def build_pdf_path(workspace_id: str, filename: Optional[str], now: Optional[float] = None) -> str:
    timestamp = int((now if now is not None else time.time()) * 1000)
    return f"pdfs/{workspace_id}/{timestamp}-{safe_filename(filename)}"


class BlobStore:
    """Interface shared by the storage backends."""

    async def upload(self, path: str, data: bytes) -> str:
        raise NotImplementedError

    async def download(self, path: str) -> bytes:
        raise NotImplementedError

    async def exists(self, path: str) -> bool:
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed blob store.

    Example:
        >>> store = LocalBlobStore("/var/lib/learnchat")
        >>> await store.upload("pdfs/w1/1700000000000-ch1.pdf", data)
        >>> data = await store.download("pdfs/w1/1700000000000-ch1.pdf")
    """

    def __init__(self, root: Optional[str] = None):
        self.root = Path(root or settings.BLOB_STORAGE_DIR).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path.lstrip("/")).resolve()
        if self.root != target and self.root not in target.parents:
            raise BlobStorageError(f"Storage path escapes storage root: {path}")
        return target

    def _write(self, path: str, data: bytes) -> int:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return len(data)

    def _read(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise BlobNotFound(f"No blob stored at {path}")
        return target.read_bytes()

    async def upload(self, path: str, data: bytes) -> str:
        """Store bytes at ``path`` and return the path."""
        size = await asyncio.to_thread(self._write, path, data)
        logger.info(f"Stored blob {path} ({size} bytes)")
        return path

    async def download(self, path: str) -> bytes:
        """
        Raises:
            BlobNotFound: If nothing is stored at ``path``
        """
        return await asyncio.to_thread(self._read, path)

    async def exists(self, path: str) -> bool:
        try:
            return await asyncio.to_thread(lambda: self._resolve(path).is_file())
        except BlobStorageError:
            return False


MISSING_OBJECT_CODES = frozenset({"404", "NoSuchKey", "NotFound"})


class S3BlobStore(BlobStore):
    """
    Blob store backed by an S3-compatible bucket.

    The storage path is used verbatim as the object key, so content metadata
    stays portable between backends.

    Example:
        >>> store = S3BlobStore(bucket="learnchat-uploads")
        >>> await store.upload("pdfs/w1/1700000000000-ch1.pdf", data)
    """

    def __init__(self, bucket: Optional[str] = None, client=None):
        self.bucket = bucket or settings.S3_BUCKET
        if not self.bucket:
            raise BlobStorageError("S3_BUCKET must be set when BLOB_BACKEND is 's3'")
        self._client = client or self._build_client()

    @staticmethod
    def _build_client():
        config = Config(
            signature_version='s3v4',
            connect_timeout=settings.S3_CONNECT_TIMEOUT_SECONDS,
            read_timeout=settings.S3_READ_TIMEOUT_SECONDS,
            retries={'max_attempts': settings.S3_MAX_ATTEMPTS},
        )
        logger.info(f"Initializing S3 client for endpoint {settings.S3_ENDPOINT_URL or 'aws'}")
        return boto3.client(
            's3',
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            config=config,
        )

    @staticmethod
    def _key(path: str) -> str:
        key = path.lstrip("/")
        if not key:
            raise BlobStorageError("Empty storage path")
        return key

    @staticmethod
    def _is_missing(error: ClientError) -> bool:
        return error.response.get('Error', {}).get('Code') in MISSING_OBJECT_CODES

    def _put(self, path: str, data: bytes) -> None:
        content_type = "application/pdf" if path.lower().endswith(".pdf") else "application/octet-stream"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=self._key(path),
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload {path} to s3://{self.bucket}: {e}")
            raise BlobStorageError(f"Failed to upload {path}: {e}") from e

    def _get(self, path: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=self._key(path))
            return response['Body'].read()
        except ClientError as e:
            if self._is_missing(e):
                raise BlobNotFound(f"No blob stored at {path}") from e
            logger.error(f"Failed to download {path} from s3://{self.bucket}: {e}")
            raise BlobStorageError(f"Failed to download {path}: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to download {path} from s3://{self.bucket}: {e}")
            raise BlobStorageError(f"Failed to download {path}: {e}") from e

    def _head(self, path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=self._key(path))
            return True
        except ClientError as e:
            if self._is_missing(e):
                return False
            raise BlobStorageError(f"Failed to check {path}: {e}") from e
        except BotoCoreError as e:
            raise BlobStorageError(f"Failed to check {path}: {e}") from e

    async def upload(self, path: str, data: bytes) -> str:
        await asyncio.to_thread(self._put, path, data)
        logger.info(f"Stored blob s3://{self.bucket}/{path} ({len(data)} bytes)")
        return path

    async def download(self, path: str) -> bytes:
        """
        Raises:
            BlobNotFound: If the bucket has no object at ``path``
            BlobStorageError: On any other S3 failure
        """
        return await asyncio.to_thread(self._get, path)

    async def exists(self, path: str) -> bool:
        return await asyncio.to_thread(self._head, path)


def get_blob_store() -> BlobStore:
    """Get the blob store selected by BLOB_BACKEND."""
    backend = settings.BLOB_BACKEND.lower()
    if backend == "s3":
        return S3BlobStore()
    if backend != "local":
        raise BlobStorageError(f"Unknown blob backend: {settings.BLOB_BACKEND}")
    return LocalBlobStore()
