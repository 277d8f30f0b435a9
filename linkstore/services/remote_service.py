"""Typed store/product operations against the remote document store.

Connectivity failures are expected on a device: reads answer None and
writes answer a best-effort record flagged ``pending_sync`` when the write
itself was not accepted. Any other backend error propagates.
"""

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from linkstore.core.exceptions import (
    OfflineException,
    OwnerRequiredException,
    ProductNotFoundException,
    ValidationException,
    is_offline_error,
)
from linkstore.core.timestamps import to_epoch_millis, utc_now_iso
from linkstore.integrations.firestore.documents import (
    PRODUCTS_COLLECTION,
    STORES_COLLECTION,
    DocumentStore,
)
from linkstore.schemas.product import Product
from linkstore.schemas.store import Store
from linkstore.services.slug_service import SlugService, slugify

logger = logging.getLogger(__name__)

LOCAL_ID_PREFIX = "local-"


def local_product_id() -> str:
    """Client-generated id for a product the server has not accepted yet."""
    return f"{LOCAL_ID_PREFIX}{uuid.uuid4().hex}"


def is_local_id(product_id: str) -> bool:
    return product_id.startswith(LOCAL_ID_PREFIX)


def sort_newest_first(products: Iterable[Product]) -> list[Product]:
    """Newest ``created_at`` first; products without one sort last."""
    return sorted(products, key=lambda p: to_epoch_millis(p.created_at), reverse=True)


class RemoteDocumentClient:
    """CRUD over the ``stores`` and ``products`` collections."""

    def __init__(self, documents: DocumentStore, slugs: SlugService | None = None) -> None:
        self.documents = documents
        self.slugs = slugs or SlugService(documents)

    # --- Stores -----------------------------------------------------------

    async def get_store_by_owner_id(self, owner_id: str | None) -> Store | None:
        """Direct lookup by owner id. None when missing or offline."""
        if not owner_id:
            return None
        try:
            data = await self.documents.get(STORES_COLLECTION, owner_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            logger.warning("Store %s unavailable offline, caller falls back to cache", owner_id)
            return None
        return Store.model_validate(data) if data else None

    async def get_store_by_username(self, username: str | None) -> Store | None:
        """First store whose username equals ``username``."""
        if not username:
            return None
        matches = await self.documents.find_equal(STORES_COLLECTION, "username", username)
        if not matches:
            return None
        return Store.model_validate(matches[0])

    async def create_initial_store(self, owner_id: str | None) -> Store:
        """Write an empty store document for a newly registered owner."""
        if not owner_id:
            raise OwnerRequiredException("create a store")

        now = self.documents.server_timestamp()
        data: dict[str, Any] = {
            "storeName": None,
            "username": None,
            "whatsappNumber": "",
            "bannerImage": None,
            "logo": None,
            "description": None,
            "storeRating": 0,
            "storeRatingCount": 0,
            "userId": owner_id,
            "createdAt": now,
            "updatedAt": now,
        }
        await self.documents.set(STORES_COLLECTION, owner_id, data, merge=False)
        return Store.model_validate({"id": owner_id, **self._resolve_sentinels(data)})

    async def upsert_store(self, owner_id: str | None, changes: dict[str, Any]) -> Store:
        """Merge ``changes`` (camelCase document fields) into the owner's store.

        Stamps ``createdAt`` for new documents and ``updatedAt`` always.
        The username is regenerated for a new store, or when ``storeName``
        changed, unless ``changes`` carries an explicit username.
        """
        if not owner_id:
            raise OwnerRequiredException("save a store")

        existing: dict[str, Any] | None = None
        try:
            existing = await self.documents.get(STORES_COLLECTION, owner_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            # Proceed as a new document
            logger.warning("Firestore offline - saving store %s without existence check", owner_id)

        now = self.documents.server_timestamp()
        username = await self._resolve_username(owner_id, changes, existing)
        payload: dict[str, Any] = {**changes, "userId": owner_id, "updatedAt": now}
        # A merge write of null would wipe a username this call could not see
        payload.pop("username", None)
        if username:
            payload["username"] = username
        if existing is None:
            payload["createdAt"] = now

        try:
            await self.documents.set(STORES_COLLECTION, owner_id, payload, merge=True)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            logger.warning("Firestore offline - store %s will sync when connection is restored", owner_id)
            return self._best_effort_store(owner_id, existing, payload, pending=True)

        try:
            saved = await self.documents.get(STORES_COLLECTION, owner_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            return self._best_effort_store(owner_id, existing, payload, pending=False)

        if saved is None:
            return self._best_effort_store(owner_id, existing, payload, pending=False)
        return Store.model_validate(saved)

    async def _resolve_username(
        self,
        owner_id: str,
        changes: dict[str, Any],
        existing: dict[str, Any] | None,
    ) -> str | None:
        explicit = changes.get("username")
        if explicit:
            return slugify(explicit) or explicit

        previous = (existing or {}).get("username")
        store_name = changes.get("storeName")
        if not store_name:
            return previous
        if existing and existing.get("storeName") == store_name and previous:
            return previous

        try:
            username = await self.slugs.ensure_unique(store_name, owner_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            logger.warning("Skipping username generation for %s - offline", owner_id)
            return previous

        if previous and username != previous:
            await self._release_username(previous, owner_id)
        return username

    async def _release_username(self, username: str, owner_id: str) -> None:
        try:
            await self.slugs.release(username, owner_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            logger.warning("Could not release username %s offline", username)

    def _best_effort_store(
        self,
        owner_id: str,
        existing: dict[str, Any] | None,
        payload: dict[str, Any],
        *,
        pending: bool,
    ) -> Store:
        merged = {**(existing or {}), **self._resolve_sentinels(payload)}
        return Store.model_validate({**merged, "id": owner_id, "pendingSync": pending})

    # --- Products ---------------------------------------------------------

    async def list_products_by_store_id(self, owner_id: str | None) -> list[Product]:
        """All products of a store, newest first.

        Raises OfflineException when the store cannot be reached so callers
        can tell "no products" from "no connection".
        """
        if not owner_id:
            return []
        try:
            docs = await self.documents.find_equal(PRODUCTS_COLLECTION, "storeId", owner_id)
        except Exception as exc:
            if is_offline_error(exc) and not isinstance(exc, OfflineException):
                raise OfflineException(f"Products of {owner_id} unavailable offline") from exc
            raise
        return sort_newest_first(Product.model_validate(doc) for doc in docs)

    async def create_product(self, owner_id: str | None, data: dict[str, Any]) -> Product:
        """Add a product document; Firestore assigns the id."""
        if not owner_id:
            raise OwnerRequiredException("add a product")

        now = self.documents.server_timestamp()
        payload = {**data, "storeId": owner_id, "createdAt": now, "updatedAt": now}

        try:
            product_id = await self.documents.add(PRODUCTS_COLLECTION, payload)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            logger.warning("Firestore offline - product will sync when connection is restored")
            return self._best_effort_product(local_product_id(), payload, pending=True)

        try:
            saved = await self.documents.get(PRODUCTS_COLLECTION, product_id)
        except Exception as exc:
            if not is_offline_error(exc):
                raise
            return self._best_effort_product(product_id, payload, pending=False)

        if saved is None:
            return self._best_effort_product(product_id, payload, pending=False)
        return Product.model_validate(saved)

    async def update_product(self, product_id: str, data: dict[str, Any]) -> Product:
        """Merge ``data`` into a product and return the stored document."""
        if not product_id:
            raise ValidationException("Product ID is required")

        payload = {**data, "updatedAt": self.documents.server_timestamp()}
        await self.documents.update(PRODUCTS_COLLECTION, product_id, payload)

        saved = await self.documents.get(PRODUCTS_COLLECTION, product_id)
        if saved is None:
            raise ProductNotFoundException(product_id)
        return Product.model_validate(saved)

    async def delete_product(self, product_id: str) -> None:
        """Hard delete. Backend errors propagate unchanged."""
        if not product_id:
            raise ValidationException("Product ID is required")
        await self.documents.delete(PRODUCTS_COLLECTION, product_id)

    def _best_effort_product(self, product_id: str, payload: dict[str, Any], *, pending: bool) -> Product:
        resolved = self._resolve_sentinels(payload)
        return Product.model_validate({**resolved, "id": product_id, "pendingSync": pending})

    def _resolve_sentinels(self, data: dict[str, Any]) -> dict[str, Any]:
        """Replace server-timestamp sentinels with the local time."""
        sentinel = self.documents.server_timestamp()
        now = utc_now_iso()
        return {key: now if value is sentinel else value for key, value in data.items()}
