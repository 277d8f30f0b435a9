"""Object storage for store and product media, using Firebase Storage."""

import asyncio
import logging
import uuid
from typing import TYPE_CHECKING, Protocol
from urllib.parse import quote

from firebase_admin import storage

from linkstore.core.exceptions import OfflineException, is_offline_error
from linkstore.core.firebase import initialize_firebase

if TYPE_CHECKING:
    from google.cloud.storage import Bucket

logger = logging.getLogger(__name__)

DOWNLOAD_URL_TEMPLATE = "https://firebasestorage.googleapis.com/v0/b/{bucket}/o/{path}?alt=media&token={token}"


class ObjectStore(Protocol):
    """Path-addressed blob storage returning durable download URLs."""

    async def upload_bytes(self, path: str, data: bytes, content_type: str) -> str: ...


def download_url(bucket_name: str, path: str, token: str) -> str:
    """Build the Firebase download URL for an object."""
    return DOWNLOAD_URL_TEMPLATE.format(
        bucket=bucket_name,
        path=quote(path, safe=""),
        token=token,
    )


class FirebaseStorageClient:
    """ObjectStore backed by the Firebase Storage bucket."""

    def __init__(self, bucket: "Bucket | None" = None) -> None:
        self._bucket = bucket

    @property
    def bucket(self) -> "Bucket":
        if self._bucket is None:
            self._bucket = storage.bucket(app=initialize_firebase())
        return self._bucket

    async def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        """Upload bytes to ``path`` and return a durable download URL."""
        try:
            # The storage SDK is blocking; keep it off the event loop
            return await asyncio.to_thread(self._upload_sync, path, data, content_type)
        except Exception as exc:
            if is_offline_error(exc):
                raise OfflineException(f"Storage unavailable uploading {path}: {exc}") from exc
            raise

    def _upload_sync(self, path: str, data: bytes, content_type: str) -> str:
        token = str(uuid.uuid4())
        blob = self.bucket.blob(path)
        blob.metadata = {"firebaseStorageDownloadTokens": token}
        blob.upload_from_string(data, content_type=content_type)
        logger.info("Uploaded %d bytes to %s", len(data), path)
        return download_url(self.bucket.name, path, token)
