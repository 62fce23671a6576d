# blogdesk/infrastructure/asset_store.py
import asyncio
import mimetypes
import os
import secrets
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
import structlog

from blogdesk.errors import UploadError, ValidationError

logger = structlog.get_logger(__name__)

ASSET_STORE = os.getenv("ASSET_STORE", "local").lower()
MEDIA_ROOT = os.getenv("MEDIA_ROOT", "./media")
MEDIA_URL = os.getenv("MEDIA_URL", "/media")
S3_BUCKET = os.getenv("S3_BUCKET", "blog-images")
S3_ENDPOINT_URL = os.getenv("S3_ENDPOINT_URL")
S3_ACCESS_KEY = os.getenv("S3_ACCESS_KEY")
S3_SECRET_KEY = os.getenv("S3_SECRET_KEY")
S3_REGION = os.getenv("S3_REGION", "auto")
S3_PUBLIC_BASE_URL = os.getenv("S3_PUBLIC_BASE_URL")


@dataclass(frozen=True)
class PendingImage:
    filename: str
    data: bytes
    content_type: Optional[str] = None


class AssetStore(Protocol):
    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None: ...

    def public_url(self, key: str) -> str: ...


class LocalAssetStore:
    """Writes assets under `root`; the app serves them from `base_url`."""

    def __init__(self, root: str = MEDIA_ROOT, base_url: str = MEDIA_URL):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        await asyncio.to_thread(self._write, key, data)

    def _write(self, key: str, data: bytes) -> None:
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        # keys are unique per upload, never overwrite
        with open(path, "xb") as fh:
            fh.write(data)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


def _get_s3_client(endpoint_url: Optional[str] = S3_ENDPOINT_URL) -> Any:
    return boto3.client(
        "s3",
        endpoint_url=endpoint_url,
        aws_access_key_id=S3_ACCESS_KEY,
        aws_secret_access_key=S3_SECRET_KEY,
        region_name=S3_REGION,
    )


class S3AssetStore:
    """S3 compatible object storage (AWS, R2, MinIO)."""

    def __init__(
        self,
        bucket: str = S3_BUCKET,
        client: Any = None,
        public_base_url: Optional[str] = S3_PUBLIC_BASE_URL,
        endpoint_url: Optional[str] = S3_ENDPOINT_URL,
    ):
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.client = client or _get_s3_client(endpoint_url)
        self.public_base_url = public_base_url

    async def upload(self, key: str, data: bytes, content_type: Optional[str] = None) -> None:
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await asyncio.to_thread(self.client.put_object, Bucket=self.bucket, Key=key, Body=data, **extra)
        except (ClientError, BotoCoreError) as exc:
            raise UploadError(f"s3 upload failed for {key}: {exc}") from exc

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            # path-style for custom endpoints
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"


def _extension(image: PendingImage) -> str:
    suffix = Path(image.filename or "").suffix.lstrip(".").lower()
    if suffix:
        return suffix
    if image.content_type:
        guessed = mimetypes.guess_extension(image.content_type.split(";")[0].strip())
        if guessed:
            return guessed.lstrip(".")
    return "bin"


class AssetStoreClient:
    """
    Upload phase of an image attachment: derive a unique key, store the
    bytes and resolve the public locator the post will reference.
    Nothing is ever deleted here; a replaced image stays in the store.
    """

    def __init__(self, store: AssetStore):
        self.store = store

    @staticmethod
    def derive_key(owner_id: uuid.UUID, image: PendingImage) -> str:
        token = f"{time.time_ns()}-{secrets.token_hex(4)}"
        return f"{owner_id}/{token}.{_extension(image)}"

    async def upload_image(self, owner_id: uuid.UUID, image: PendingImage) -> str:
        if not image.data:
            raise ValidationError("image is empty")
        key = self.derive_key(owner_id, image)
        try:
            await self.store.upload(key, image.data, image.content_type)
        except UploadError:
            logger.warning("asset_upload_failed", key=key, owner_id=str(owner_id))
            raise
        except OSError as exc:
            logger.warning("asset_upload_failed", key=key, owner_id=str(owner_id), error=str(exc))
            raise UploadError(f"upload failed for {key}: {exc}") from exc
        url = self.store.public_url(key)
        logger.info("asset_uploaded", key=key, owner_id=str(owner_id), size=len(image.data))
        return url


def build_asset_store() -> AssetStore:
    if ASSET_STORE == "s3":
        return S3AssetStore()
    return LocalAssetStore()
