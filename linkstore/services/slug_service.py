"""Store username (slug) generation and uniqueness.

The check-then-write loop is not transactional: two owners racing on the
same base name can both see a candidate as free. When reservations are
enabled each candidate is also claimed with a create-if-absent write on
``usernames/{slug}``, which Firestore applies atomically, so only one
owner can win a given slug.
"""

import logging
import re

from linkstore.core.config import settings
from linkstore.core.exceptions import DocumentExistsException
from linkstore.core.timestamps import now_millis
from linkstore.integrations.firestore.documents import (
    STORES_COLLECTION,
    USERNAMES_COLLECTION,
    DocumentStore,
)

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 1000

_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")


def slugify(name: str | None) -> str | None:
    """Turn a display name into a URL-safe slug.

    Only ASCII letters, digits, whitespace and hyphens survive, so
    ``"Ñoño"`` becomes ``"oo"``. Returns None when nothing is left.
    """
    if not name:
        return None

    slug = name.lower().strip()
    slug = _DISALLOWED_RE.sub("", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _HYPHENS_RE.sub("-", slug)
    slug = slug.strip("-")
    return slug or None


class SlugService:
    """Allocates unique store usernames against the stores collection."""

    def __init__(
        self,
        documents: DocumentStore,
        *,
        reservations_enabled: bool | None = None,
    ) -> None:
        self.documents = documents
        self.reservations_enabled = (
            settings.slug_reservations_enabled
            if reservations_enabled is None
            else reservations_enabled
        )

    async def is_available(self, slug: str | None, exclude_owner_id: str | None = None) -> bool:
        """True if no store uses ``slug``, or only ``exclude_owner_id``'s store does.

        Connectivity errors propagate so callers can skip generation.
        """
        if not slug:
            return False

        matches = await self.documents.find_equal(STORES_COLLECTION, "username", slug)
        if not matches:
            return True
        if exclude_owner_id is None:
            return False
        return all(match.get("id") == exclude_owner_id for match in matches)

    async def ensure_unique(self, name: str | None, exclude_owner_id: str | None = None) -> str | None:
        """Return a unique slug for ``name``, appending ``-1``, ``-2``... as needed.

        Gives up after ``MAX_SLUG_ATTEMPTS`` candidates and returns
        ``{base}-{epoch millis}`` instead.
        """
        base = slugify(name)
        if not base:
            return None

        for attempt in range(MAX_SLUG_ATTEMPTS):
            candidate = base if attempt == 0 else f"{base}-{attempt}"
            if not await self.is_available(candidate, exclude_owner_id):
                continue
            if await self._reserve(candidate, exclude_owner_id):
                return candidate
            logger.info("Slug %s was claimed concurrently, trying next", candidate)

        fallback = f"{base}-{now_millis()}"
        logger.warning("Slug attempts exhausted for %r, using %s", base, fallback)
        return fallback

    async def claim(self, slug: str, owner_id: str) -> bool:
        """Atomically claim ``slug`` for ``owner_id``. Idempotent for the same owner."""
        try:
            await self.documents.create(
                USERNAMES_COLLECTION,
                slug,
                {"ownerId": owner_id, "createdAt": self.documents.server_timestamp()},
            )
            return True
        except DocumentExistsException:
            existing = await self.documents.get(USERNAMES_COLLECTION, slug)
            return bool(existing) and existing.get("ownerId") == owner_id

    async def release(self, slug: str, owner_id: str) -> None:
        """Drop ``owner_id``'s claim on ``slug``; other owners' claims are left alone."""
        if not self.reservations_enabled:
            return
        existing = await self.documents.get(USERNAMES_COLLECTION, slug)
        if existing and existing.get("ownerId") == owner_id:
            await self.documents.delete(USERNAMES_COLLECTION, slug)
            logger.info("Released username %s", slug)

    async def _reserve(self, slug: str, owner_id: str | None) -> bool:
        if not self.reservations_enabled or not owner_id:
            return True
        return await self.claim(slug, owner_id)
