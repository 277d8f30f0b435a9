"""Pytest configuration and fixtures for the Linkstore sync test suite.

Provides:
- In-memory document store and object store with failure injection
- Mock Redis (fakeredis) for the general cache tier
- Encrypted file tier under a per-test temp directory
- Wired RemoteDocumentClient, AssetUploader and StoreSync fixtures
"""

import copy
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import fakeredis.aioredis
import pytest

from linkstore.core.exceptions import DocumentExistsException
from linkstore.services.asset_service import AssetUploader
from linkstore.services.cache_service import ChainedCache, RedisTier, SecureFileTier
from linkstore.services.remote_service import RemoteDocumentClient
from linkstore.services.slug_service import SlugService
from linkstore.services.sync_service import StoreSync

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"
CACHE_KEY = "test-cache-key"

SERVER_TIMESTAMP = object()
_CLOCK_START = datetime(2024, 1, 1, tzinfo=UTC)


# ---------------------------------------------------------------------------
# In-memory collaborators
# ---------------------------------------------------------------------------


class FakeDocumentStore:
    """DocumentStore kept in dicts.

    ``fail(op, exc)`` makes every later call of ``op`` raise ``exc`` until
    ``recover()``. Server timestamps resolve to a clock that advances one
    second per write, so later writes always sort newer.
    """

    def __init__(self) -> None:
        self.collections: dict[str, dict[str, dict[str, Any]]] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._ticks = 0
        self._next_id = 0

    # -- test helpers --

    def fail(self, op: str, exc: Exception) -> None:
        self.failures[op] = exc

    def recover(self) -> None:
        self.failures.clear()

    def seed(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self.collections.setdefault(collection, {})[doc_id] = copy.deepcopy(data)

    def doc(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        return self.collections.get(collection, {}).get(doc_id)

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    def _check(self, op: str, collection: str) -> None:
        self.calls.append((op, collection))
        if op in self.failures:
            raise self.failures[op]

    def _resolve(self, data: dict[str, Any]) -> dict[str, Any]:
        resolved = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                self._ticks += 1
                value = _CLOCK_START + timedelta(seconds=self._ticks)
            resolved[key] = copy.deepcopy(value)
        return resolved

    # -- DocumentStore --

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        self._check("get", collection)
        data = self.doc(collection, doc_id)
        if data is None:
            return None
        return {"id": doc_id, **copy.deepcopy(data)}

    async def find_equal(self, collection: str, field: str, value: Any) -> list[dict[str, Any]]:
        self._check("find_equal", collection)
        return [
            {"id": doc_id, **copy.deepcopy(data)}
            for doc_id, data in self.collections.get(collection, {}).items()
            if data.get(field) == value
        ]

    async def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = True
    ) -> None:
        self._check("set", collection)
        docs = self.collections.setdefault(collection, {})
        if merge and doc_id in docs:
            docs[doc_id].update(self._resolve(data))
        else:
            docs[doc_id] = self._resolve(data)

    async def create(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check("create", collection)
        docs = self.collections.setdefault(collection, {})
        if doc_id in docs:
            raise DocumentExistsException(collection, doc_id)
        docs[doc_id] = self._resolve(data)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        self._check("add", collection)
        self._next_id += 1
        doc_id = f"doc{self._next_id}"
        self.collections.setdefault(collection, {})[doc_id] = self._resolve(data)
        return doc_id

    async def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check("update", collection)
        docs = self.collections.setdefault(collection, {})
        if doc_id not in docs:
            raise KeyError(f"No document to update: {collection}/{doc_id}")
        docs[doc_id].update(self._resolve(data))

    async def delete(self, collection: str, doc_id: str) -> None:
        self._check("delete", collection)
        self.collections.get(collection, {}).pop(doc_id, None)


class FakeObjectStore:
    """ObjectStore recording uploads; ``error`` makes every upload raise."""

    def __init__(self) -> None:
        self.uploads: dict[str, tuple[bytes, str]] = {}
        self.error: Exception | None = None

    async def upload_bytes(self, path: str, data: bytes, content_type: str) -> str:
        if self.error is not None:
            raise self.error
        self.uploads[path] = (data, content_type)
        return f"https://storage.example.com/{path}"


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def documents() -> FakeDocumentStore:
    """Provide an empty in-memory document store per test."""
    return FakeDocumentStore()


@pytest.fixture
def objects() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def secure_tier(tmp_path: Path) -> SecureFileTier:
    return SecureFileTier(tmp_path / "secure", encryption_key=CACHE_KEY)


@pytest.fixture
def general_tier(fake_redis: fakeredis.aioredis.FakeRedis) -> RedisTier:
    return RedisTier(fake_redis, namespace="test")


@pytest.fixture
def cache(secure_tier: SecureFileTier, general_tier: RedisTier) -> ChainedCache:
    """Both cache tiers, secure first."""
    return ChainedCache([secure_tier, general_tier])


@pytest.fixture
def slugs(documents: FakeDocumentStore) -> SlugService:
    return SlugService(documents, reservations_enabled=True)


@pytest.fixture
def remote(documents: FakeDocumentStore, slugs: SlugService) -> RemoteDocumentClient:
    return RemoteDocumentClient(documents, slugs)


@pytest.fixture
def assets(objects: FakeObjectStore) -> AssetUploader:
    return AssetUploader(objects)


@pytest.fixture
def sync(remote: RemoteDocumentClient, assets: AssetUploader, cache: ChainedCache) -> StoreSync:
    """StoreSync over the in-memory collaborators and a real two-tier cache."""
    return StoreSync(remote, assets, cache)


@pytest.fixture
def local_image(tmp_path: Path) -> str:
    """Absolute path of a small image file on the device."""
    path = tmp_path / "picked" / "photo.jpg"
    path.parent.mkdir(parents=True)
    path.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return str(path)


@pytest.fixture
def store_doc() -> dict[str, Any]:
    """Remote store document for OWNER_ID."""
    return {
        "storeName": "Acme",
        "username": "acme",
        "whatsappNumber": "+15550102000",
        "bannerImage": None,
        "logo": None,
        "description": "Handmade goods",
        "storeRating": 4.0,
        "storeRatingCount": 3,
        "userId": OWNER_ID,
        "createdAt": _CLOCK_START - timedelta(days=30),
        "updatedAt": _CLOCK_START - timedelta(days=1),
    }


def product_doc(title: str, price: float, days_ago: int | None, **extra: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "storeId": OWNER_ID,
        "title": title,
        "price": price,
        "description": None,
        "category": "General",
        "image": None,
        "previewVideo": None,
        "rating": 0,
        "ratingCount": 0,
        **extra,
    }
    if days_ago is not None:
        data["createdAt"] = _CLOCK_START - timedelta(days=days_ago)
    return data


@pytest.fixture
def seeded_documents(documents: FakeDocumentStore, store_doc: dict[str, Any]) -> FakeDocumentStore:
    """Document store holding OWNER_ID's store and three products."""
    documents.seed("stores", OWNER_ID, store_doc)
    documents.seed("usernames", "acme", {"ownerId": OWNER_ID})
    documents.seed("products", "p-old", product_doc("Old mug", 12.0, 10))
    documents.seed("products", "p-new", product_doc("New mug", 15.0, 1, category="Kitchen"))
    documents.seed("products", "p-mid", product_doc("Tote", 20.0, 5, category="Bags"))
    return documents
