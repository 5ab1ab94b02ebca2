"""
Document storage backends.

The lifecycle service receives a DocumentStorage instance explicitly; there is
no process-wide client. Two backends are provided:

- LocalDocumentStorage: files under a local directory, served at /uploads
- S3DocumentStorage: objects in an S3 bucket via boto3

Contract shared by both:
    put(data, mime_type, folder) -> url      raises StorageError on failure
    delete(url) -> bool                      False if the object is missing,
                                             StorageError on backend failure
"""

import logging
import uuid
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config_manager import UploadConfig
from errors import StorageError
from validation import MIME_EXTENSIONS

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"
MISSING_OBJECT_CODES = {"404", "NoSuchKey", "NotFound"}


class DocumentStorage(Protocol):
    """Storage capability consumed by the verification service"""

    def put(self, data: bytes, mime_type: str, folder: str) -> str:
        ...

    def delete(self, url: str) -> bool:
        ...


def _object_name(mime_type: str) -> str:
    return f"{uuid.uuid4()}.{MIME_EXTENSIONS.get(mime_type, 'bin')}"


class LocalDocumentStorage:
    """Stores documents on the local filesystem"""

    def __init__(self, base_dir: str = "uploads", base_url: str = "http://localhost:8000"):
        self.base_dir = Path(base_dir)
        self.base_url = base_url.rstrip("/")

    def put(self, data: bytes, mime_type: str, folder: str) -> str:
        name = _object_name(mime_type)
        target_dir = self.base_dir / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / name).write_bytes(data)
        except OSError as e:
            logger.error("Local document write failed: folder=%s error=%s", folder, e)
            raise StorageError("Document storage is unavailable") from e

        logger.info("Stored document locally: %s/%s", folder, name)
        return f"{self.base_url}{URL_PREFIX}/{folder}/{name}"

    def _path_for(self, url: str) -> Optional[Path]:
        path = urlparse(url).path
        marker = path.find(URL_PREFIX + "/")
        if marker < 0:
            return None
        relative = path[marker + len(URL_PREFIX) + 1:]
        candidate = (self.base_dir / relative).resolve()
        base = self.base_dir.resolve()
        # Refuse anything that escapes the storage directory
        if base != candidate and base not in candidate.parents:
            return None
        return candidate

    def delete(self, url: str) -> bool:
        path = self._path_for(url or "")
        if path is None or not path.is_file():
            logger.warning("Local document not found for deletion: %s", url)
            return False
        try:
            path.unlink()
        except OSError as e:
            logger.error("Local document delete failed: path=%s error=%s", path, e)
            raise StorageError("Document storage is unavailable") from e
        logger.info("Deleted local document: %s", path.name)
        return True


class S3DocumentStorage:
    """Stores documents in an S3 bucket"""

    def __init__(self, bucket: str, region: str = "us-east-1", prefix: str = "", client=None):
        self.bucket = bucket
        self.region = region
        self.prefix = prefix.strip("/")
        self.client = client or boto3.client("s3", region_name=region)

    def _key(self, folder: str, name: str) -> str:
        parts = [p for p in (self.prefix, folder, name) if p]
        return "/".join(parts)

    def _url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def _key_from_url(self, url: str) -> Optional[str]:
        parsed = urlparse(url)
        if not parsed.netloc.startswith(f"{self.bucket}."):
            return None
        key = parsed.path.lstrip("/")
        return key or None

    def put(self, data: bytes, mime_type: str, folder: str) -> str:
        key = self._key(folder, _object_name(mime_type))
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=mime_type)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 upload failed: key=%s error=%s", key, e)
            raise StorageError("Document storage is unavailable") from e

        logger.info("Uploaded document to S3: %s", key)
        return self._url(key)

    def delete(self, url: str) -> bool:
        key = self._key_from_url(url or "")
        if key is None:
            logger.warning("URL does not belong to bucket %s: %s", self.bucket, url)
            return False
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in MISSING_OBJECT_CODES:
                logger.warning("S3 object not found for deletion: %s", key)
                return False
            logger.error("S3 head_object failed: key=%s error=%s", key, e)
            raise StorageError("Document storage is unavailable") from e
        except BotoCoreError as e:
            raise StorageError("Document storage is unavailable") from e

        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            logger.error("S3 delete failed: key=%s error=%s", key, e)
            raise StorageError("Document storage is unavailable") from e

        logger.info("Deleted S3 document: %s", key)
        return True


def create_storage(config: UploadConfig) -> DocumentStorage:
    """Build the configured storage backend"""
    if config.storage_backend == "s3":
        return S3DocumentStorage(bucket=config.s3_bucket, region=config.s3_region, prefix=config.s3_prefix)
    return LocalDocumentStorage(base_dir=config.local_directory, base_url=config.base_url)
