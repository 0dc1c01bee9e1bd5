import logging
import mimetypes
import os

import boto3
from botocore.exceptions import ClientError
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

LOCAL_FILES_URL = "/api/v1/compress/files/"


class ObjectNotFound(LookupError):
    pass


class StorageBackend:
    """Where durable artifacts live.

    Locators returned by save() are what the job table stores; every other
    method takes one back. Uploads always arrive on local disk first, so
    save() takes a local source path.
    """

    is_remote = False

    def save(self, source_path: str, key: str) -> str:
        raise NotImplementedError

    def get_buffer(self, locator: str) -> bytes:
        raise NotImplementedError

    def delete(self, locator: str) -> None:
        raise NotImplementedError

    def get_url(self, locator: str) -> str:
        raise NotImplementedError


def s3_client():
    return boto3.client(
        "s3",
        endpoint_url=settings.S3_ENDPOINT_URL,
        region_name=settings.S3_REGION,
        aws_access_key_id=settings.S3_ACCESS_KEY_ID,
        aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
    )


_MISSING_CODES = ("NoSuchKey", "404", "NotFound")
# without s3:ListBucket a missing key answers 403
_UNREADABLE_CODES = _MISSING_CODES + ("AccessDenied", "403")


def _error_code(err: ClientError) -> str:
    return str(err.response.get("Error", {}).get("Code", ""))


def _is_missing(err: ClientError) -> bool:
    return _error_code(err) in _MISSING_CODES


class S3Storage(StorageBackend):
    is_remote = True

    def __init__(self, client, bucket: str, url_expires: int = 3600):
        self.client = client
        self.bucket = bucket
        self.url_expires = url_expires

    def save(self, source_path: str, key: str) -> str:
        content_type = mimetypes.guess_type(key)[0] or "application/octet-stream"
        with open(source_path, "rb") as fh:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=fh, ContentType=content_type)
        logger.debug("uploaded %s to s3://%s/%s", source_path, self.bucket, key)
        return key

    def get_buffer(self, locator: str) -> bytes:
        try:
            resp = self.client.get_object(Bucket=self.bucket, Key=locator)
        except ClientError as e:
            if _error_code(e) in _UNREADABLE_CODES:
                raise ObjectNotFound(locator) from e
            raise
        return resp["Body"].read()

    def delete(self, locator: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=locator)
        except ClientError as e:
            if not _is_missing(e):
                raise

    def get_url(self, locator: str) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": locator},
            ExpiresIn=self.url_expires,
        )


def build_storage(conf=settings) -> StorageBackend:
    """Resolve the configured driver. Called once per process at startup."""
    driver = (conf.STORAGE_DRIVER or "local").lower()

    if driver == "local":
        from .disk_storage import LocalStorage

        return LocalStorage(conf.UPLOAD_DIR, LOCAL_FILES_URL)

    if driver == "s3":
        if not conf.S3_BUCKET:
            raise ImproperlyConfigured("STORAGE_DRIVER=s3 requires S3_BUCKET")
        return S3Storage(s3_client(), conf.S3_BUCKET, conf.SIGNED_URL_EXPIRES)

    raise ImproperlyConfigured(f"Unknown STORAGE_DRIVER: {driver!r}")


def best_effort(action, *args):
    """Run a cleanup action once. Failures are logged, never raised or retried."""
    try:
        action(*args)
    except (OSError, ClientError) as e:
        logger.warning("best-effort %s%r failed: %s", getattr(action, "__name__", action), args, e)


def remove_local(path: str) -> None:
    if path and os.path.exists(path):
        os.remove(path)
