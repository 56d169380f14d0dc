"""
Object storage for signature images and delivery PDFs

Objects are addressed by slash separated keys. STORAGE_BACKEND selects where
they live: a local directory served by the API itself, or an S3 bucket whose
objects are handed out as public or presigned URLs.
"""

import logging
import mimetypes
import os
from functools import lru_cache
from typing import Optional

import boto3

from pumpdispatch.config import settings
from pumpdispatch.utils.signatures import decode_image_data_url

logger = logging.getLogger(__name__)

STORAGE_BACKENDS = ("local", "s3")

def _check_key(key: str) -> str:
    parts = key.split("/")
    if not key or key.startswith("/") or any(part in ("", ".", "..") for part in parts):
        raise ValueError(f"Invalid storage key: {key}")
    return key

def _content_type(key: str) -> str:
    return mimetypes.guess_type(key)[0] or "application/octet-stream"

class StorageService:
    """Common interface of the storage backends"""

    def url_for(self, key: str) -> str:
        raise NotImplementedError

    def upload_bytes(self, key: str, data: bytes) -> str:
        """Store raw bytes and return the download URL"""
        raise NotImplementedError

    def read_bytes(self, key: str) -> bytes:
        raise NotImplementedError

    def upload_data_url(self, key: str, data_url: str) -> str:
        """Store an image sent as a data URL and return the download URL"""
        return self.upload_bytes(key, decode_image_data_url(data_url))

class LocalStorageService(StorageService):
    """Objects under STORAGE_DIR, downloaded from STORAGE_BASE_URL"""

    def __init__(self, root_dir: Optional[str] = None, base_url: Optional[str] = None):
        self.root_dir = os.path.abspath(root_dir or settings.STORAGE_DIR)
        self.base_url = (base_url if base_url is not None else settings.STORAGE_BASE_URL).rstrip("/")

    def _path_for(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root_dir, _check_key(key)))
        if not path.startswith(self.root_dir + os.sep):
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def upload_bytes(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "wb") as fh:
            fh.write(data)
        logger.info(f"Stored object {key} ({len(data)} bytes)")
        return self.url_for(key)

    def read_bytes(self, key: str) -> bytes:
        with open(self._path_for(key), "rb") as fh:
            return fh.read()

class S3StorageService(StorageService):
    """
    Objects in an S3 bucket.

    With S3_PUBLIC_BASE_URL set (a public bucket or a CDN in front of it) the
    returned URLs are plain links; otherwise they are presigned GET URLs valid
    for S3_PRESIGN_SECONDS.
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        client=None,
        public_base_url: Optional[str] = None,
        presign_seconds: Optional[int] = None
    ):
        self.bucket = bucket or settings.S3_BUCKET
        if not self.bucket:
            raise ValueError("S3_BUCKET must be set to store files in S3")
        self.client = client if client is not None else _s3_client(settings.S3_REGION)
        base = public_base_url if public_base_url is not None else settings.S3_PUBLIC_BASE_URL
        self.public_base_url = (base or "").rstrip("/")
        self.presign_seconds = presign_seconds or settings.S3_PRESIGN_SECONDS

    def url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_seconds
        )

    def upload_bytes(self, key: str, data: bytes) -> str:
        self.client.put_object(
            Bucket=self.bucket,
            Key=_check_key(key),
            Body=data,
            ContentType=_content_type(key)
        )
        logger.info(f"Stored object s3://{self.bucket}/{key} ({len(data)} bytes)")
        return self.url_for(key)

    def read_bytes(self, key: str) -> bytes:
        response = self.client.get_object(Bucket=self.bucket, Key=_check_key(key))
        return response["Body"].read()

@lru_cache(maxsize=None)
def _s3_client(region: Optional[str]):
    return boto3.client("s3", region_name=region)

def get_storage() -> StorageService:
    """FastAPI dependency for the configured object store"""
    backend = settings.STORAGE_BACKEND
    if backend == "s3":
        return S3StorageService()
    if backend == "local":
        return LocalStorageService()
    raise ValueError(f"STORAGE_BACKEND must be one of: {', '.join(STORAGE_BACKENDS)}")
