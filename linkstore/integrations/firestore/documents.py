"""Narrow document-store interface and its Cloud Firestore implementation."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from firebase_admin import firestore_async
from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from linkstore.core.exceptions import DocumentExistsException, OfflineException, is_offline_error
from linkstore.core.firebase import initialize_firebase

logger = logging.getLogger(__name__)

STORES_COLLECTION = "stores"
PRODUCTS_COLLECTION = "products"
USERNAMES_COLLECTION = "usernames"


class DocumentStore(Protocol):
    """Operations the sync layer needs from the remote document database.

    Documents are plain dicts. Reads include the document id under ``"id"``.
    Connectivity failures surface as ``OfflineException``.
    """

    def server_timestamp(self) -> Any: ...

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def find_equal(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]: ...

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True
    ) -> None: ...

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def add(self, collection: str, data: dict[str, Any]) -> str: ...

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> None: ...


@contextmanager
def translate_offline(action: str) -> Iterator[None]:
    """Re-raise connectivity-class SDK errors as OfflineException."""
    try:
        yield
    except OfflineException:
        raise
    except Exception as exc:
        if is_offline_error(exc):
            raise OfflineException(f"Firestore unavailable during {action}: {exc}") from exc
        raise


class FirestoreDocumentStore:
    """DocumentStore backed by the async Cloud Firestore client."""

    def __init__(self, client: firestore.AsyncClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> firestore.AsyncClient:
        """Lazy-create the Firestore client from the Firebase Admin app."""
        if self._client is None:
            self._client = firestore_async.client(initialize_firebase())
        return self._client

    def server_timestamp(self) -> Any:
        return firestore.SERVER_TIMESTAMP

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with translate_offline(f"get {collection}/{doc_id}"):
            snapshot = await self.client.collection(collection).document(doc_id).get()
        if not snapshot.exists:
            return None
        return {"id": snapshot.id, **(snapshot.to_dict() or {})}

    async def find_equal(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        query = self.client.collection(collection).where(filter=FieldFilter(field, "==", value))
        with translate_offline(f"query {collection}.{field}"):
            return [
                {"id": snapshot.id, **(snapshot.to_dict() or {})}
                async for snapshot in query.stream()
            ]

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True
    ) -> None:
        with translate_offline(f"set {collection}/{doc_id}"):
            await self.client.collection(collection).document(doc_id).set(data, merge=merge)

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Create only if absent; Firestore enforces this atomically."""
        with translate_offline(f"create {collection}/{doc_id}"):
            try:
                await self.client.collection(collection).document(doc_id).create(data)
            except google_exceptions.AlreadyExists as exc:
                raise DocumentExistsException(collection, doc_id) from exc

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        with translate_offline(f"add {collection}"):
            _update_time, doc_ref = await self.client.collection(collection).add(data)
        return str(doc_ref.id)

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        with translate_offline(f"update {collection}/{doc_id}"):
            await self.client.collection(collection).document(doc_id).update(data)

    async def delete(self, collection: str, doc_id: str) -> None:
        with translate_offline(f"delete {collection}/{doc_id}"):
            await self.client.collection(collection).document(doc_id).delete()
