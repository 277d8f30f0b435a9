"""Device-local cache with a secure tier and a general-purpose tier.

Every write goes to all tiers; the general tier is a backup of the secure
one, not a cache of it. Reads try tiers in order and fall back on failure
or miss, logging each fallback so the serving tier is observable.
"""

import asyncio
import hashlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any, Protocol

import redis.asyncio as aioredis

from linkstore.core.config import settings
from linkstore.core.encryption import decrypt_value, encrypt_value
from linkstore.core.exceptions import CacheTierUnavailableException

logger = logging.getLogger(__name__)


class CacheTier(Protocol):
    """One key-value persistence backend holding JSON-serializable values."""

    name: str

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _write_private(path: Path, text: str) -> None:
    """Write ``text`` atomically to a file only the current user can read."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f"{path.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except OSError:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class SecureFileTier:
    """Encrypted files under the cache directory.

    Without an encryption key there is no secure storage on this device and
    every call raises ``CacheTierUnavailableException``.
    """

    name = "secure"

    def __init__(self, directory: str | Path | None = None, encryption_key: str | None = None) -> None:
        self.directory = Path(directory or settings.cache_dir)
        self._key = settings.cache_encryption_key if encryption_key is None else encryption_key

    def _path(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode()).hexdigest()[:32]
        return self.directory / f"{digest}.enc"

    def _require_key(self) -> str:
        if not self._key:
            raise CacheTierUnavailableException("Secure storage is not available on this device")
        return self._key

    async def get(self, key: str) -> Any | None:
        secret = self._require_key()
        token = await asyncio.to_thread(_read_text, self._path(key))
        if token is None:
            return None
        return json.loads(decrypt_value(token, secret))

    async def set(self, key: str, value: Any) -> None:
        secret = self._require_key()
        token = encrypt_value(json.dumps(value), secret)
        await asyncio.to_thread(_write_private, self._path(key), token)

    async def remove(self, key: str) -> None:
        self._require_key()
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


class RedisTier:
    """JSON values in Redis under ``{namespace}:{key}``."""

    name = "general"

    def __init__(self, redis: aioredis.Redis, namespace: str | None = None) -> None:
        self.redis = redis
        self.namespace = namespace or settings.cache_namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Any | None:
        raw = await self.redis.get(self._key(key))
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any) -> None:
        await self.redis.set(self._key(key), json.dumps(value))

    async def remove(self, key: str) -> None:
        await self.redis.delete(self._key(key))


def create_redis_tier(url: str | None = None) -> RedisTier:
    """General tier connected to the configured Redis."""
    client = aioredis.from_url(url or settings.redis_url, decode_responses=True)
    return RedisTier(client)


class ChainedCache:
    """Composite over ordered tiers; the first tier is the primary."""

    def __init__(self, tiers: Sequence[CacheTier]) -> None:
        if not tiers:
            raise ValueError("ChainedCache needs at least one tier")
        self.tiers = tuple(tiers)
        self.last_read_tier: str | None = None

    async def get(self, key: str) -> Any | None:
        """Read ``key`` from the first tier that has it.

        Answers None when no tier has the value or every tier failed; the
        two cases are not distinguished.
        """
        self.last_read_tier = None
        final_tier_failed = False

        for index, tier in enumerate(self.tiers):
            try:
                value = await tier.get(key)
            except Exception as exc:
                logger.warning("Cache tier %s failed reading %s, falling back: %s", tier.name, key, exc)
                final_tier_failed = index == len(self.tiers) - 1
                continue
            if value is not None:
                if index > 0:
                    logger.warning("Cache read of %s served by fallback tier %s", key, tier.name)
                self.last_read_tier = tier.name
                return value

        if final_tier_failed:
            return await self._last_resort_read(key)
        return None

    async def _last_resort_read(self, key: str) -> Any | None:
        tier = self.tiers[-1]
        try:
            value = await tier.get(key)
        except Exception as exc:
            logger.error("Cache tier %s failed again reading %s: %s", tier.name, key, exc)
            return None
        if value is not None:
            self.last_read_tier = tier.name
        return value

    async def set(self, key: str, value: Any) -> bool:
        """Write to every tier. True if at least one tier accepted the value."""
        written = 0
        for tier in self.tiers:
            try:
                await tier.set(key, value)
                written += 1
            except Exception as exc:
                logger.warning("Cache tier %s failed writing %s: %s", tier.name, key, exc)
        if not written:
            logger.error("No cache tier accepted %s", key)
        return written > 0

    async def remove(self, key: str) -> None:
        await self.remove_many([key])

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove keys from every tier."""
        keys = list(keys)
        for tier in self.tiers:
            for key in keys:
                try:
                    await tier.remove(key)
                except Exception as exc:
                    logger.warning("Cache tier %s failed removing %s: %s", tier.name, key, exc)
