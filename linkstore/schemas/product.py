"""Pydantic schemas for product documents."""

from typing import Annotated

from pydantic import BeforeValidator, Field

from linkstore.schemas.common import DocumentSchema, Timestamp

DEFAULT_CATEGORY = "General"

Category = Annotated[str, BeforeValidator(lambda value: value or DEFAULT_CATEGORY)]


class Product(DocumentSchema):
    """Product listed by a store.

    ``store_id`` is the owning store's id (the owner id), never its username.
    The id is assigned by Firestore, except for local-fallback records which
    carry a ``local-`` id and ``pending_sync=True`` until reconciled.
    """

    id: str
    store_id: str
    title: str
    price: float
    description: str | None = None
    category: Category = DEFAULT_CATEGORY
    image: str | None = None
    preview_video: str | None = None
    rating: float = 0
    rating_count: int = 0
    created_at: Timestamp = None
    updated_at: Timestamp = None
    pending_sync: bool = False

    def content_key(self) -> tuple[str, float, str, str]:
        """Fields used to match a local-fallback record to its remote copy."""
        return (self.title, self.price, self.description or "", self.category)


class ProductCreate(DocumentSchema):
    """Schema for adding a product."""

    title: str = Field(..., min_length=1, max_length=500)
    price: float = Field(..., gt=0)
    description: str | None = None
    category: Category = DEFAULT_CATEGORY
    image: str | None = None
    preview_video: str | None = None
    rating: float = 0
    rating_count: int = 0


class ProductUpdate(DocumentSchema):
    """Partial product update."""

    title: str | None = Field(default=None, min_length=1, max_length=500)
    price: float | None = Field(default=None, gt=0)
    description: str | None = None
    category: str | None = None
    image: str | None = None
    preview_video: str | None = None
    rating: float | None = Field(default=None, ge=0, le=5)
    rating_count: int | None = Field(default=None, ge=0)
