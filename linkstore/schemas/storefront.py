"""Public storefront view resolved from a username."""

from linkstore.schemas.common import BaseSchema
from linkstore.schemas.product import Product
from linkstore.schemas.store import Store

ALL_CATEGORIES = "all"


class Storefront(BaseSchema):
    """A store as buyers see it: store document, newest-first products, categories."""

    store: Store
    products: tuple[Product, ...]
    categories: tuple[str, ...]
    share_url: str

    def filter_by_category(self, category: str | None) -> tuple[Product, ...]:
        """Products in ``category``; everything for ``None`` or ``"all"``."""
        if not category or category.lower() == ALL_CATEGORIES:
            return self.products
        return tuple(p for p in self.products if p.category == category)
