# app/services/storage_service.py

import base64
import logging
import re
import uuid
from pathlib import Path
from typing import Any, Optional, Tuple
from urllib.parse import urlparse

import boto3
import httpx
from botocore.config import Config
from starlette.concurrency import run_in_threadpool

from app.errors import StorageError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SECONDS = 30.0
LOCAL_URL_PREFIX = "/uploads/"
ASSET_TYPES = ("images", "videos")

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[^;,]+)?(?:;[^,]*)?,(?P<data>.*)$", re.DOTALL)


def default_content_type(asset_type: str) -> str:
    return "video/mp4" if asset_type == "videos" else "image/png"


def extension_for(content_type: str, asset_type: str) -> str:
    subtype = content_type.split(";")[0].strip().split("/")[-1] if "/" in content_type else ""
    return subtype or ("mp4" if asset_type == "videos" else "png")


def to_data_url(content_type: str, data: bytes) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def parse_data_url(data_url: str, asset_type: str) -> Tuple[bytes, str]:
    """Decode a base64 ``data:`` URL into (bytes, content_type)."""
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise StorageError("Malformed data URL")
    content_type = match.group("mime") or default_content_type(asset_type)
    try:
        payload = base64.b64decode(match.group("data"), validate=False)
    except ValueError as e:
        raise StorageError(f"Invalid base64 payload: {e}") from e
    return payload, content_type


class AssetStorage:
    """Durable home for generated assets.

    Subclasses implement :meth:`store` and may override :meth:`signed_url`
    and :meth:`delete_asset`; fetching the source of an upload and reading an
    asset back are shared.
    """

    name = "base"
    transport: Optional[httpx.AsyncBaseTransport] = None

    async def upload_asset(self, asset_url: str, asset_type: str, user_id: str) -> str:
        """Persist the asset behind ``asset_url`` and return its stored URL."""
        if asset_type not in ASSET_TYPES:
            raise StorageError(f"Unknown asset type: {asset_type}")
        logger.info(f"Processing {asset_type} for user {user_id}")
        try:
            if asset_url.startswith("data:"):
                data, content_type = parse_data_url(asset_url, asset_type)
            else:
                data, content_type = await self._fetch(asset_url, asset_type)
            filename = f"{uuid.uuid4()}.{extension_for(content_type, asset_type)}"
            return await self.store(data, content_type, filename, asset_type, user_id)
        except StorageError as e:
            logger.error(f"Error uploading {asset_type}: {e}")
            raise
        except Exception as e:
            logger.error(f"Error uploading {asset_type}: {e}")
            raise StorageError(f"Failed to upload {asset_type}") from e

    async def _fetch(self, asset_url: str, asset_type: str) -> Tuple[bytes, str]:
        accept = "video/*" if asset_type == "videos" else "image/*"
        try:
            async with httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True, transport=self.transport) as client:
                response = await client.get(asset_url, headers={"Accept": accept})
        except httpx.TimeoutException as e:
            raise StorageError(f"Timed out fetching asset after {FETCH_TIMEOUT_SECONDS:.0f}s") from e
        if response.is_error:
            raise StorageError(f"Failed to fetch asset: {response.reason_phrase}")
        content_type = response.headers.get("content-type") or default_content_type(asset_type)
        return response.content, content_type

    async def store(self, data: bytes, content_type: str, filename: str, asset_type: str, user_id: str) -> str:
        raise NotImplementedError

    def signed_url(self, url: str, expires_in: int = 3600) -> str:
        return url

    async def delete_asset(self, url: str) -> None:
        raise NotImplementedError

    async def download(self, url: str) -> bytes:
        """Read an asset back through a short-lived URL."""
        signed = self.signed_url(url, 3600)
        if signed.startswith(LOCAL_URL_PREFIX):
            return await self._read_local(signed)
        async with httpx.AsyncClient(timeout=FETCH_TIMEOUT_SECONDS, follow_redirects=True, transport=self.transport) as client:
            response = await client.get(signed)
        if response.is_error:
            logger.error(f"Storage fetch failed: {response.status_code} {response.reason_phrase}")
            raise StorageError("Failed to fetch asset from storage")
        return response.content

    async def _read_local(self, url: str) -> bytes:
        raise StorageError(f"Local assets are not served by {self.name} storage")

    def ping(self) -> bool:
        return True


class LocalStorage(AssetStorage):
    name = "local"

    def __init__(self, root: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.root = Path(root)
        self.transport = transport

    def path_for(self, url: str) -> Path:
        relative = url[len(LOCAL_URL_PREFIX):]
        path = (self.root / relative).resolve()
        if self.root.resolve() not in path.parents:
            raise StorageError(f"Refusing path outside upload root: {url}")
        return path

    async def store(self, data: bytes, content_type: str, filename: str, asset_type: str, user_id: str) -> str:
        logger.info(f"Using local file storage for {asset_type}")
        upload_dir = self.root / asset_type
        upload_dir.mkdir(parents=True, exist_ok=True)
        (upload_dir / filename).write_bytes(data)
        return f"{LOCAL_URL_PREFIX}{asset_type}/{filename}"

    async def delete_asset(self, url: str) -> None:
        if not url.startswith(LOCAL_URL_PREFIX):
            return
        try:
            self.path_for(url).unlink(missing_ok=True)
            logger.info(f"Deleted local file {url}")
        except OSError as e:
            logger.error(f"Error deleting asset: {e}")
            raise StorageError("Failed to delete asset") from e

    async def _read_local(self, url: str) -> bytes:
        path = self.path_for(url)
        if not path.is_file():
            raise StorageError(f"Asset not found on disk: {url}")
        return path.read_bytes()

    def ping(self) -> bool:
        return self.root.exists() or self.root.parent.exists()


class S3Storage(AssetStorage):
    name = "s3"

    def __init__(self, client: Any, bucket: str, region: str, fallback: LocalStorage):
        self.client = client
        self.bucket = bucket
        self.region = region
        self.fallback = fallback

    def url_for(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    @staticmethod
    def is_s3_url(url: str) -> bool:
        return "amazonaws.com" in url

    @staticmethod
    def key_for(url: str) -> str:
        return urlparse(url).path.lstrip("/")

    async def store(self, data: bytes, content_type: str, filename: str, asset_type: str, user_id: str) -> str:
        key = f"{asset_type}/{user_id}/{filename}"
        try:
            await run_in_threadpool(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
            logger.info(f"Uploaded {key} to S3")
            return self.url_for(key)
        except Exception as e:
            logger.error(f"Error uploading to S3, falling back to local storage: {e}")
        return await self.fallback.store(data, content_type, filename, asset_type, user_id)

    def signed_url(self, url: str, expires_in: int = 3600) -> str:
        if not self.is_s3_url(url):
            return url
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": self.key_for(url)},
                ExpiresIn=expires_in,
            )
        except Exception as e:
            logger.error(f"Error generating signed URL: {e}")
            return url

    async def delete_asset(self, url: str) -> None:
        if not self.is_s3_url(url):
            await self.fallback.delete_asset(url)
            return
        try:
            await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=self.key_for(url))
            logger.info(f"Deleted {url} from S3")
        except Exception as e:
            logger.error(f"Error deleting asset: {e}")
            raise StorageError("Failed to delete asset") from e

    async def _read_local(self, url: str) -> bytes:
        return await self.fallback._read_local(url)

    def ping(self) -> bool:
        try:
            self.client.head_bucket(Bucket=self.bucket)
            return True
        except Exception:
            return False


def build_storage(settings, s3_client: Optional[Any] = None) -> AssetStorage:
    """Pick the storage backend once, from configuration."""
    local = LocalStorage(settings.local_upload_dir)
    if not settings.s3_configured:
        logger.warning(f"S3 not configured, storing assets under {settings.local_upload_dir}")
        return local
    client = s3_client or boto3.client(
        "s3",
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
        config=Config(signature_version="s3v4"),
    )
    logger.info(f"Storing assets in S3 bucket {settings.aws_bucket_name} ({settings.aws_region})")
    return S3Storage(client, settings.aws_bucket_name, settings.aws_region, local)
