"""Uploads locally-resident media and swaps in durable URLs.

Uploads are opportunistic: when one fails the local reference is kept
and the record is saved with it, so it only resolves on this device until
a later save retries the upload.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from linkstore.core.exceptions import is_offline_error
from linkstore.core.timestamps import now_millis
from linkstore.integrations.storage.client import ObjectStore

logger = logging.getLogger(__name__)


class AssetKind(StrEnum):
    BANNER = "banner"
    LOGO = "logo"
    PRODUCT_IMAGE = "product-image"
    PRODUCT_VIDEO = "product-video"


@dataclass(frozen=True)
class AssetLayout:
    """Where an asset kind lives in the bucket."""

    folder: str
    extension: str
    content_type: str
    fixed_name: str | None = None


ASSET_LAYOUTS: dict[AssetKind, AssetLayout] = {
    AssetKind.BANNER: AssetLayout("stores", "jpg", "image/jpeg", fixed_name="banner"),
    AssetKind.LOGO: AssetLayout("stores", "jpg", "image/jpeg", fixed_name="logo"),
    AssetKind.PRODUCT_IMAGE: AssetLayout("products", "jpg", "image/jpeg"),
    AssetKind.PRODUCT_VIDEO: AssetLayout("products", "mp4", "video/mp4"),
}


def is_local_asset(uri: str | None) -> bool:
    """True for ``file://`` URIs and absolute paths; False for http(s) URLs."""
    if not uri:
        return False
    if uri.startswith(("http://", "https://")):
        return False
    return uri.startswith("file://") or (uri.startswith("/") and not uri.startswith("//"))


def storage_path(kind: AssetKind, owner_id: str, entity_id: str | None = None) -> str:
    """``{folder}/{owner_id}/{name}.{ext}``; products without an id get a temp name."""
    layout = ASSET_LAYOUTS[kind]
    name = layout.fixed_name or entity_id or f"temp-{now_millis()}"
    return f"{layout.folder}/{owner_id}/{name}.{layout.extension}"


def local_path(uri: str) -> Path:
    if uri.startswith("file://"):
        return Path(url2pathname(unquote(urlparse(uri).path)))
    return Path(uri)


async def read_local_asset(uri: str) -> bytes:
    """Read a local asset's bytes without blocking the event loop."""
    return await asyncio.to_thread(local_path(uri).read_bytes)


class AssetUploader:
    """Asset upload pipeline over an ObjectStore."""

    def __init__(self, objects: ObjectStore) -> None:
        self.objects = objects

    async def upload(
        self,
        owner_id: str,
        kind: AssetKind,
        entity_id: str | None,
        uri: str | None,
    ) -> str | None:
        """Upload ``uri`` if it is local and return its durable URL.

        Remote URLs and empty values come back unchanged without touching
        storage. Any failure returns the original local URI.
        """
        if not uri or not is_local_asset(uri):
            return uri

        path = storage_path(kind, owner_id, entity_id)
        layout = ASSET_LAYOUTS[kind]
        try:
            data = await read_local_asset(uri)
            url = await self.objects.upload_bytes(path, data, layout.content_type)
        except Exception as exc:
            if is_offline_error(exc):
                logger.warning("Upload of %s deferred, storage offline: %s", path, exc)
            else:
                logger.error("Upload of %s failed, keeping local path %s", path, uri, exc_info=exc)
            return uri

        logger.info("Uploaded %s asset to %s", kind.value, path)
        return url
