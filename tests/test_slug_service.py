"""Tests for store username (slug) generation and reservation."""

import re
from unittest.mock import AsyncMock, patch

import pytest

from linkstore.core.exceptions import OfflineException
from linkstore.services.slug_service import MAX_SLUG_ATTEMPTS, SlugService, slugify
from tests.conftest import OTHER_OWNER_ID, OWNER_ID, FakeDocumentStore


class TestSlugify:
    """Tests for slugify()."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("My Cool Store!!", "my-cool-store"),
            ("Ñoño", "oo"),
            ("  Acme   Goods  ", "acme-goods"),
            ("--Acme -- Goods--", "acme-goods"),
            ("Shop #1", "shop-1"),
        ],
    )
    def test_slugifies_names(self, name: str, expected: str) -> None:
        """Names are lower-cased, stripped to [a-z0-9-] and hyphenated."""
        assert slugify(name) == expected

    @pytest.mark.parametrize("name", [None, "", "  ", "!!!", "ñ"])
    def test_empty_result_is_none(self, name: str | None) -> None:
        """Input with nothing slug-safe returns None."""
        assert slugify(name) is None


class TestIsAvailable:
    """Tests for SlugService.is_available()."""

    @pytest.mark.asyncio
    async def test_unused_slug_is_available(self, slugs: SlugService) -> None:
        assert await slugs.is_available("acme") is True

    @pytest.mark.asyncio
    async def test_empty_slug_is_never_available(self, slugs: SlugService) -> None:
        assert await slugs.is_available("") is False
        assert await slugs.is_available(None) is False

    @pytest.mark.asyncio
    async def test_slug_of_other_owner_is_taken(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        """A store owned by someone else makes the slug unavailable."""
        documents.seed("stores", OTHER_OWNER_ID, {"username": "acme"})

        assert await slugs.is_available("acme") is False
        assert await slugs.is_available("acme", OWNER_ID) is False

    @pytest.mark.asyncio
    async def test_own_slug_is_available_to_owner(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        """The only match belonging to the excluded owner does not count."""
        documents.seed("stores", OWNER_ID, {"username": "acme"})

        assert await slugs.is_available("acme", OWNER_ID) is True
        assert await slugs.is_available("acme") is False

    @pytest.mark.asyncio
    async def test_offline_propagates(self, documents: FakeDocumentStore, slugs: SlugService) -> None:
        """Connectivity errors are not mistaken for availability."""
        documents.fail("find_equal", OfflineException("client is offline"))

        with pytest.raises(OfflineException):
            await slugs.is_available("acme")


class TestEnsureUnique:
    """Tests for SlugService.ensure_unique()."""

    @pytest.mark.asyncio
    async def test_free_base_slug_is_used_and_reserved(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        """The base slug is returned and claimed for the owner."""
        slug = await slugs.ensure_unique("Acme Goods", OWNER_ID)

        assert slug == "acme-goods"
        assert documents.doc("usernames", "acme-goods")["ownerId"] == OWNER_ID

    @pytest.mark.asyncio
    async def test_appends_sequential_suffix(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        """Taken candidates are skipped in order: base, base-1, base-2."""
        documents.seed("stores", "a", {"username": "acme"})
        documents.seed("stores", "b", {"username": "acme-1"})

        assert await slugs.ensure_unique("Acme", OWNER_ID) == "acme-2"

    @pytest.mark.asyncio
    async def test_reservation_held_by_other_owner_is_skipped(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        """A concurrent claim on usernames/{slug} makes the candidate unavailable."""
        documents.seed("usernames", "acme", {"ownerId": OTHER_OWNER_ID})

        assert await slugs.ensure_unique("Acme", OWNER_ID) == "acme-1"
        assert documents.doc("usernames", "acme")["ownerId"] == OTHER_OWNER_ID

    @pytest.mark.asyncio
    async def test_reservations_disabled_skips_claim(self, documents: FakeDocumentStore) -> None:
        service = SlugService(documents, reservations_enabled=False)

        assert await service.ensure_unique("Acme", OWNER_ID) == "acme"
        assert documents.doc("usernames", "acme") is None

    @pytest.mark.asyncio
    async def test_terminates_with_timestamp_fallback(self, slugs: SlugService) -> None:
        """After every sequential candidate is rejected a timestamped slug is returned."""
        with patch.object(slugs, "is_available", AsyncMock(return_value=False)) as mock_available:
            slug = await slugs.ensure_unique("Acme", OWNER_ID)

        assert mock_available.await_count == MAX_SLUG_ATTEMPTS
        assert re.fullmatch(r"acme-\d{13}", slug)
        assert mock_available.await_args_list[0].args[0] == "acme"
        assert mock_available.await_args_list[-1].args[0] == "acme-999"

    @pytest.mark.asyncio
    async def test_unsluggable_name_returns_none(self, slugs: SlugService) -> None:
        assert await slugs.ensure_unique("!!!", OWNER_ID) is None


class TestClaimAndRelease:
    """Tests for SlugService.claim() and release()."""

    @pytest.mark.asyncio
    async def test_claim_is_idempotent_for_same_owner(self, slugs: SlugService) -> None:
        assert await slugs.claim("acme", OWNER_ID) is True
        assert await slugs.claim("acme", OWNER_ID) is True
        assert await slugs.claim("acme", OTHER_OWNER_ID) is False

    @pytest.mark.asyncio
    async def test_release_only_drops_own_claim(
        self, documents: FakeDocumentStore, slugs: SlugService
    ) -> None:
        documents.seed("usernames", "acme", {"ownerId": OTHER_OWNER_ID})

        await slugs.release("acme", OWNER_ID)
        assert documents.doc("usernames", "acme") is not None

        await slugs.release("acme", OTHER_OWNER_ID)
        assert documents.doc("usernames", "acme") is None
