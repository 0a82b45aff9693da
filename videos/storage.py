import logging
import mimetypes
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from uuid import uuid4

import boto3
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .errors import UploadError

logger = logging.getLogger(__name__)

MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(frozen=True)
class UploadedAsset:
    url: str
    remote_id: str


def get_s3_client():
    """
    SDK client for server-side upload/delete.
    """
    session = boto3.session.Session(
        aws_access_key_id=settings.S3_ACCESS_KEY,
        aws_secret_access_key=settings.S3_SECRET_KEY,
        region_name=settings.S3_REGION,
    )
    return session.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,  # e.g. http://127.0.0.1:9000
        config=BotoConfig(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            retries={"max_attempts": 3, "mode": "standard"},
        ),
    )


class RemoteAssetStore:
    """Pushes rendered files to S3/MinIO and hands back stable public URLs."""

    def __init__(self, client, bucket: str, public_endpoint: str, key_prefix: str = ""):
        self.client = client
        self.bucket = bucket
        self.public_endpoint = public_endpoint.rstrip("/")
        self.key_prefix = key_prefix.strip("/")

    def object_url(self, key: str) -> str:
        return f"{self.public_endpoint}/{self.bucket}/{key}"

    def _new_key(self, local_path: Path, kind: str, prefix: str | None) -> str:
        parts = [p for p in (self.key_prefix, (prefix or "").strip("/"), kind) if p]
        parts.append(f"{uuid4().hex}{local_path.suffix.lower()}")
        return "/".join(parts)

    def upload(self, local_path, kind: str, prefix: str | None = None) -> UploadedAsset:
        """
        Upload a single file under a fresh key. Uploading the same file twice
        creates two objects; nothing is overwritten.
        """
        local_path = Path(local_path)
        key = self._new_key(local_path, kind, prefix)

        extra = {}
        content_type, _ = mimetypes.guess_type(local_path.name)
        if content_type:
            extra["ContentType"] = content_type

        try:
            self.client.upload_file(str(local_path), self.bucket, key, ExtraArgs=extra or None)
        except (ClientError, BotoCoreError, S3UploadFailedError, OSError) as e:
            raise UploadError(f"upload of {local_path.name} to {key} failed: {e}") from e

        logger.info("Uploaded %s as s3://%s/%s", local_path.name, self.bucket, key)
        return UploadedAsset(url=self.object_url(key), remote_id=key)

    def delete(self, remote_id: str):
        """Remove an uploaded object. Deleting a missing object is a no-op."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=remote_id)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in MISSING_OBJECT_CODES:
                logger.debug("Remote object %s already absent", remote_id)
                return
            raise UploadError(f"delete of {remote_id} failed: {e}") from e
        except BotoCoreError as e:
            raise UploadError(f"delete of {remote_id} failed: {e}") from e
        logger.info("Deleted s3://%s/%s", self.bucket, remote_id)


@lru_cache(maxsize=None)
def get_asset_store() -> RemoteAssetStore:
    """Process-wide store, built lazily from settings."""
    return RemoteAssetStore(
        client=get_s3_client(),
        bucket=settings.S3_BUCKET,
        public_endpoint=settings.S3_PUBLIC_ENDPOINT,
        key_prefix=settings.S3_KEY_PREFIX,
    )


def reset_asset_store():
    if get_asset_store.cache_info().currsize:
        close = getattr(get_asset_store().client, "close", None)
        if close:
            close()
    get_asset_store.cache_clear()
