"""Read-only public view of a store, resolved by username."""

import logging
from urllib.parse import quote

from linkstore.core.config import settings
from linkstore.schemas.storefront import Storefront
from linkstore.services.remote_service import RemoteDocumentClient

logger = logging.getLogger(__name__)


def share_url(username: str, base_url: str | None = None) -> str:
    """Public link buyers open to browse a store."""
    base = (base_url or settings.storefront_base_url).rstrip("/")
    return f"{base}/store/{quote(username, safe='')}"


class StorefrontService:
    """Loads what a buyer sees at ``/store/{username}``."""

    def __init__(self, remote: RemoteDocumentClient) -> None:
        self.remote = remote

    async def load(self, username: str | None) -> Storefront | None:
        """Store, newest-first products and categories. None when unknown.

        ``OfflineException`` propagates: a buyer without a connection has no
        cached copy of someone else's store.
        """
        if not username:
            return None

        store = await self.remote.get_store_by_username(username)
        if store is None or not store.id:
            logger.info("No storefront for username %s", username)
            return None

        products = await self.remote.list_products_by_store_id(store.id)
        categories = sorted({p.category for p in products if p.category})
        return Storefront(
            store=store,
            products=tuple(products),
            categories=tuple(categories),
            share_url=share_url(username),
        )
