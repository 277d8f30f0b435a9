"""Sync orchestrator: owns the in-memory store, products and analytics.

Every mutation writes remote (best effort), then writes through to the
local cache whatever the remote outcome, so the in-memory state and the
cache agree after any call that returns. Results say whether the remote
store confirmed the value.
"""

import asyncio
import logging
from typing import Any

import redis.asyncio as aioredis
from pydantic import ValidationError

from linkstore.core.exceptions import (
    OwnerRequiredException,
    ValidationException,
    is_offline_error,
)
from linkstore.core.logging_config import operation_scope
from linkstore.core.timestamps import utc_now_iso
from linkstore.integrations.firestore.documents import FirestoreDocumentStore
from linkstore.integrations.storage.client import FirebaseStorageClient
from linkstore.schemas.analytics import Analytics
from linkstore.schemas.common import DocumentSchema, round_half_up
from linkstore.schemas.product import Product, ProductCreate, ProductUpdate
from linkstore.schemas.store import LOCAL_ONLY_FIELDS, Store, StoreUpdate
from linkstore.schemas.sync import SyncOrigin, SyncResult
from linkstore.services.asset_service import AssetKind, AssetUploader
from linkstore.services.cache_service import ChainedCache, RedisTier, SecureFileTier, create_redis_tier
from linkstore.services.remote_service import (
    RemoteDocumentClient,
    is_local_id,
    local_product_id,
    sort_newest_first,
)

logger = logging.getLogger(__name__)

STORE_KEY = "storeData"
PRODUCTS_KEY = "products"
ANALYTICS_KEY = "analytics"
PENDING_DELETES_KEY = "pendingDeletes"
CACHE_KEYS = (STORE_KEY, PRODUCTS_KEY, ANALYTICS_KEY, PENDING_DELETES_KEY)

# Server-owned fields never sent from a client save
_STORE_SERVER_FIELDS = {"id", "created_at", "updated_at", "user_id", *LOCAL_ONLY_FIELDS}
_PRODUCT_SERVER_FIELDS = {"id", "store_id", "created_at", "updated_at", *LOCAL_ONLY_FIELDS}

MIN_RATING = 1
MAX_RATING = 5


def _origin(pending: bool) -> SyncOrigin:
    return SyncOrigin.LOCAL_FALLBACK if pending else SyncOrigin.REMOTE


def _pending_store_payload(store: Store) -> dict[str, Any]:
    """Full document of a store holding unsynced edits.

    ``username`` goes along only when the edit set it, so a rename made
    offline still regenerates the username from the new name.
    """
    payload = store.to_document(exclude=_STORE_SERVER_FIELDS | {"username"})
    if store.username_pending:
        payload["username"] = store.username
    return payload


def _log_remote_failure(action: str, exc: Exception) -> None:
    if is_offline_error(exc):
        logger.warning("%s deferred, remote offline: %s", action, exc)
    else:
        logger.error("%s failed, continuing with local state", action, exc_info=exc)


def _validate[M: DocumentSchema](model: type[M], data: M | dict[str, Any]) -> M:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ValidationException(str(exc)) from exc


class StoreSync:
    """Single writer of the vendor's store state.

    State is exposed as frozen models and tuples; callers read it through
    the properties and change it only through the operations below.
    """

    def __init__(
        self,
        remote: RemoteDocumentClient,
        assets: AssetUploader,
        cache: ChainedCache,
    ) -> None:
        self.remote = remote
        self.assets = assets
        self.cache = cache

        self._store = Store()
        self._products: list[Product] = []
        self._analytics = Analytics()
        self._pending_deletes: set[str] = set()
        self._loading = True

    @property
    def store(self) -> Store:
        return self._store

    @property
    def products(self) -> tuple[Product, ...]:
        return tuple(self._products)

    @property
    def analytics(self) -> Analytics:
        return self._analytics

    @property
    def is_loading(self) -> bool:
        return self._loading

    @property
    def pending_deletes(self) -> frozenset[str]:
        return frozenset(self._pending_deletes)

    # --- Bootstrap --------------------------------------------------------

    async def bootstrap(self, owner_id: str | None) -> None:
        """Populate state from the remote store, falling back to the cache.

        Never raises. Local-fallback records left by earlier sessions are
        pushed once the remote store is reachable.
        """
        with operation_scope("bootstrap"):
            try:
                cached_store, cached_products, cached_analytics = await self._read_cache()

                remote_store: Store | None = None
                remote_products: list[Product] | None = None
                if owner_id:
                    try:
                        remote_store = await self.remote.get_store_by_owner_id(owner_id)
                        remote_products = await self.remote.list_products_by_store_id(owner_id)
                    except Exception as exc:
                        _log_remote_failure("Remote bootstrap", exc)
                        remote_store = None
                        remote_products = None

                reachable = remote_products is not None
                self._store = await self._choose_store(owner_id, remote_store, cached_store, reachable)

                if remote_products is not None:
                    products = await self._reconcile_products(owner_id, remote_products, cached_products)
                else:
                    logger.info("Bootstrapping %s from local cache", owner_id or "anonymous session")
                    products = [p for p in cached_products if p.id not in self._pending_deletes]
                self._products = products

                analytics = cached_analytics or Analytics()
                self._analytics = analytics.recompute(total_products=len(products))

                await self._persist_all()
            finally:
                self._loading = False

    async def _read_cache(self) -> tuple[Store | None, list[Product], Analytics | None]:
        store_data = await self.cache.get(STORE_KEY)
        products_data = await self.cache.get(PRODUCTS_KEY) or []
        analytics_data = await self.cache.get(ANALYTICS_KEY)
        pending_deletes = await self.cache.get(PENDING_DELETES_KEY) or []

        store = None
        if store_data:
            try:
                store = Store.model_validate(store_data)
            except ValidationError:
                logger.warning("Discarding unreadable cached store")

        products: list[Product] = []
        for item in products_data:
            try:
                products.append(Product.model_validate(item))
            except ValidationError:
                logger.warning("Discarding unreadable cached product %s", item.get("id"))

        analytics = None
        if analytics_data:
            try:
                analytics = Analytics.model_validate(analytics_data)
            except ValidationError:
                logger.warning("Discarding unreadable cached analytics")

        self._pending_deletes = set(pending_deletes)
        return store, products, analytics

    async def _choose_store(
        self,
        owner_id: str | None,
        remote_store: Store | None,
        cached_store: Store | None,
        reachable: bool,
    ) -> Store:
        if owner_id and reachable and cached_store is not None and cached_store.pending_sync:
            payload = _pending_store_payload(cached_store)
            try:
                pushed = await self.remote.upsert_store(owner_id, payload)
            except Exception as exc:
                _log_remote_failure(f"Pushing pending store {owner_id}", exc)
                return cached_store
            logger.info("Pushed pending store changes for %s", owner_id)
            return pushed
        if remote_store is not None:
            return remote_store
        if cached_store is not None:
            return cached_store
        return Store()

    async def _reconcile_products(
        self,
        owner_id: str | None,
        remote_products: list[Product],
        cached_products: list[Product],
    ) -> list[Product]:
        """Merge a fresh remote listing with local-fallback records."""
        # The listing was fetched before the retry, so hide every id queued at start
        hidden = set(self._pending_deletes)
        await self._retry_pending_deletes()

        by_id = {p.id: p for p in remote_products if p.id not in hidden}
        unmatched_keys = [p.content_key() for p in by_id.values()]
        created: list[Product] = []

        for product in cached_products:
            if not product.pending_sync or product.id in hidden:
                continue

            if is_local_id(product.id):
                key = product.content_key()
                if key in unmatched_keys:
                    # The queued write reached the server; its copy wins
                    unmatched_keys.remove(key)
                    continue
                created.append(await self._push_local_product(owner_id, product))
            else:
                by_id[product.id] = await self._push_pending_update(product)

        return sort_newest_first([*created, *by_id.values()])

    async def _retry_pending_deletes(self) -> None:
        for product_id in sorted(self._pending_deletes):
            try:
                await self.remote.delete_product(product_id)
            except Exception as exc:
                _log_remote_failure(f"Retrying delete of {product_id}", exc)
                continue
            self._pending_deletes.discard(product_id)
            logger.info("Deleted product %s on retry", product_id)

    async def _push_local_product(self, owner_id: str | None, product: Product) -> Product:
        if not owner_id:
            return product
        image, video = await self._upload_product_assets(owner_id, None, product.image, product.preview_video)
        data = product.model_copy(update={"image": image, "preview_video": video})
        try:
            created = await self.remote.create_product(
                owner_id, data.to_document(exclude=_PRODUCT_SERVER_FIELDS)
            )
        except Exception as exc:
            _log_remote_failure(f"Pushing local product {product.id}", exc)
            return data
        if created.pending_sync:
            return data
        logger.info("Local product %s synced as %s", product.id, created.id)
        return created

    async def _push_pending_update(self, product: Product) -> Product:
        try:
            updated = await self.remote.update_product(
                product.id, product.to_document(exclude=_PRODUCT_SERVER_FIELDS)
            )
        except Exception as exc:
            _log_remote_failure(f"Pushing pending update of {product.id}", exc)
            return product
        return updated

    # --- Store ------------------------------------------------------------

    async def save_store(
        self, owner_id: str | None, changes: StoreUpdate | dict[str, Any]
    ) -> SyncResult[Store]:
        """Merge ``changes`` into the store, upload local images and save.

        The merged store is cached whatever the remote outcome. Offline
        failures degrade to a local-fallback result; any other remote error
        is raised after the local write.
        """
        update = _validate(StoreUpdate, changes)
        fields = update.changes()

        username_pending = "username" in fields or (
            self._store.pending_sync and self._store.username_pending
        )

        with operation_scope("save_store"):
            merged = Store.model_validate(
                {
                    **self._store.to_document(),
                    **update.changes(by_alias=True),
                    "usernamePending": username_pending,
                }
            )

            if not owner_id:
                logger.warning("Saving store without an owner id, keeping changes local")
                local = merged.model_copy(update={"pending_sync": True, "updated_at": utc_now_iso()})
                await self._commit_store(local)
                return SyncResult[Store](value=local, origin=SyncOrigin.LOCAL_FALLBACK)

            banner, logo = await asyncio.gather(
                self.assets.upload(owner_id, AssetKind.BANNER, owner_id, merged.banner_image),
                self.assets.upload(owner_id, AssetKind.LOGO, owner_id, merged.logo),
            )
            uploaded = {
                alias: url
                for name, alias, url in (("banner_image", "bannerImage", banner), ("logo", "logo", logo))
                if name in fields or url != getattr(merged, name)
            }
            merged = merged.model_copy(update={"banner_image": banner, "logo": logo})

            if self._store.pending_sync:
                payload = _pending_store_payload(merged)
            else:
                # Only what this call changed, so remote edits since bootstrap survive
                payload = {**update.changes(by_alias=True), **uploaded}

            try:
                saved = await self.remote.upsert_store(owner_id, payload)
            except Exception as exc:
                local = merged.model_copy(
                    update={"user_id": owner_id, "pending_sync": True, "updated_at": utc_now_iso()}
                )
                await self._commit_store(local)
                if not is_offline_error(exc):
                    logger.error("Store save failed for %s", owner_id, exc_info=exc)
                    raise
                logger.warning("Store save for %s deferred, remote offline: %s", owner_id, exc)
                return SyncResult[Store](value=local, origin=SyncOrigin.LOCAL_FALLBACK)

            if not saved.username and merged.username:
                saved = saved.model_copy(update={"username": merged.username})
            if saved.pending_sync:
                saved = saved.model_copy(update={"username_pending": username_pending})

            await self._commit_store(saved)
            return SyncResult[Store](value=saved, origin=_origin(saved.pending_sync))

    async def update_store_rating(self, owner_id: str | None, rating: float) -> SyncResult[Store]:
        """Fold one rating into the running average and save it."""
        if not owner_id:
            raise OwnerRequiredException("rate a store")
        if (
            isinstance(rating, bool)
            or not isinstance(rating, int | float)
            or not MIN_RATING <= rating <= MAX_RATING
        ):
            raise ValidationException(f"Rating must be a number between {MIN_RATING} and {MAX_RATING}")

        count = self._store.store_rating_count
        average = round_half_up((self._store.store_rating * count + rating) / (count + 1))
        return await self.save_store(
            owner_id,
            StoreUpdate(store_rating=average, store_rating_count=count + 1),
        )

    # --- Products ---------------------------------------------------------

    async def add_product(
        self, owner_id: str | None, data: ProductCreate | dict[str, Any]
    ) -> SyncResult[Product]:
        """Create a product. Never fails once the input is valid."""
        if not owner_id:
            raise OwnerRequiredException("add a product")
        create = _validate(ProductCreate, data)

        with operation_scope("add_product"):
            image, video = await self._upload_product_assets(owner_id, None, create.image, create.preview_video)
            payload = create.model_copy(update={"image": image, "preview_video": video}).to_document()

            try:
                product = await self.remote.create_product(owner_id, payload)
            except Exception as exc:
                _log_remote_failure("Adding product", exc)
                now = utc_now_iso()
                product = Product.model_validate(
                    {
                        **payload,
                        "id": local_product_id(),
                        "storeId": owner_id,
                        "createdAt": now,
                        "updatedAt": now,
                        "pendingSync": True,
                    }
                )

            self._products.insert(0, product)
            await self._commit_products()
            return SyncResult[Product](value=product, origin=_origin(product.pending_sync))

    async def update_product(
        self,
        owner_id: str | None,
        product_id: str,
        changes: ProductUpdate | dict[str, Any],
    ) -> SyncResult[Product] | SyncResult[None]:
        """Merge ``changes`` into a held product; local state advances on failure.

        An id that is not held leaves local state alone. Its changes are still
        sent to the remote store, and the result carries ``None`` when that
        is not possible.
        """
        update = _validate(ProductUpdate, changes)
        fields = update.changes()

        with operation_scope("update_product"):
            if owner_id:
                uploads = {}
                image, video = await self._upload_product_assets(
                    owner_id, product_id, fields.get("image"), fields.get("preview_video")
                )
                if "image" in fields:
                    uploads["image"] = image
                if "preview_video" in fields:
                    uploads["preview_video"] = video
                update = update.model_copy(update=uploads)

            index = self._index_of(product_id)
            if index is None:
                return await self._update_unheld_product(owner_id, product_id, update)
            current = self._products[index]

            local = Product.model_validate(
                {
                    **current.to_document(),
                    **update.changes(by_alias=True),
                    "pendingSync": True,
                    "updatedAt": utc_now_iso(),
                }
            )

            if not owner_id or (current.pending_sync and is_local_id(current.id)):
                logger.info("Product %s updated locally, will sync later", product_id)
                updated = local
            else:
                if current.pending_sync:
                    payload = local.to_document(exclude=_PRODUCT_SERVER_FIELDS)
                else:
                    payload = update.changes(by_alias=True)
                try:
                    updated = await self.remote.update_product(product_id, payload)
                except Exception as exc:
                    _log_remote_failure(f"Updating product {product_id}", exc)
                    updated = local

            self._products[index] = updated
            await self._commit_products()
            return SyncResult[Product](value=updated, origin=_origin(updated.pending_sync))

    async def delete_product(self, owner_id: str | None, product_id: str) -> SyncResult[str]:
        """Remove a product; a failed remote delete is retried on bootstrap."""
        with operation_scope("delete_product"):
            origin = SyncOrigin.REMOTE
            if not is_local_id(product_id):
                try:
                    await self.remote.delete_product(product_id)
                except Exception as exc:
                    _log_remote_failure(f"Deleting product {product_id} for {owner_id}", exc)
                    self._pending_deletes.add(product_id)
                    origin = SyncOrigin.LOCAL_FALLBACK

            self._products = [p for p in self._products if p.id != product_id]
            await self._commit_products()
            await self.cache.set(PENDING_DELETES_KEY, sorted(self._pending_deletes))
            return SyncResult[str](value=product_id, origin=origin)

    async def _upload_product_assets(
        self,
        owner_id: str,
        product_id: str | None,
        image: str | None,
        video: str | None,
    ) -> tuple[str | None, str | None]:
        image = await self.assets.upload(owner_id, AssetKind.PRODUCT_IMAGE, product_id, image)
        video = await self.assets.upload(owner_id, AssetKind.PRODUCT_VIDEO, product_id, video)
        return image, video

    def _index_of(self, product_id: str) -> int | None:
        for index, product in enumerate(self._products):
            if product.id == product_id:
                return index
        return None

    async def _update_unheld_product(
        self, owner_id: str | None, product_id: str, update: ProductUpdate
    ) -> SyncResult[Product] | SyncResult[None]:
        logger.warning("Product %s is not loaded, local state unchanged", product_id)
        if not owner_id or is_local_id(product_id):
            return SyncResult[None](value=None, origin=SyncOrigin.LOCAL_FALLBACK)
        try:
            updated = await self.remote.update_product(product_id, update.changes(by_alias=True))
        except Exception as exc:
            _log_remote_failure(f"Updating product {product_id}", exc)
            return SyncResult[None](value=None, origin=SyncOrigin.LOCAL_FALLBACK)
        return SyncResult[Product](value=updated, origin=SyncOrigin.REMOTE)

    # --- Analytics --------------------------------------------------------

    async def increment_clicks(self) -> Analytics:
        self._analytics = self._analytics.recompute(total_products=len(self._products), clicks=1)
        await self.cache.set(ANALYTICS_KEY, self._analytics.to_document())
        return self._analytics

    async def increment_orders(self) -> Analytics:
        self._analytics = self._analytics.recompute(total_products=len(self._products), orders=1)
        await self.cache.set(ANALYTICS_KEY, self._analytics.to_document())
        return self._analytics

    # --- Local state ------------------------------------------------------

    async def clear_all_data(self) -> None:
        """Reset this device's state. The remote store is not touched."""
        with operation_scope("clear_all_data"):
            self._store = Store()
            self._products = []
            self._analytics = Analytics()
            self._pending_deletes = set()
            await self.cache.remove_many(CACHE_KEYS)
            logger.info("Cleared local store data")

    async def _commit_store(self, store: Store) -> None:
        self._store = store
        await self.cache.set(STORE_KEY, store.to_document())

    async def _commit_products(self) -> None:
        self._analytics = self._analytics.recompute(total_products=len(self._products))
        await self.cache.set(PRODUCTS_KEY, [p.to_document() for p in self._products])
        await self.cache.set(ANALYTICS_KEY, self._analytics.to_document())

    async def _persist_all(self) -> None:
        await self.cache.set(STORE_KEY, self._store.to_document())
        await self.cache.set(PRODUCTS_KEY, [p.to_document() for p in self._products])
        await self.cache.set(ANALYTICS_KEY, self._analytics.to_document())
        await self.cache.set(PENDING_DELETES_KEY, sorted(self._pending_deletes))


def create_store_sync(redis: aioredis.Redis | None = None) -> StoreSync:
    """Wire a StoreSync to Firestore, Firebase Storage and the configured cache tiers."""
    documents = FirestoreDocumentStore()
    general = RedisTier(redis) if redis is not None else create_redis_tier()
    return StoreSync(
        remote=RemoteDocumentClient(documents),
        assets=AssetUploader(FirebaseStorageClient()),
        cache=ChainedCache([SecureFileTier(), general]),
    )
