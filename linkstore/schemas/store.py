"""Pydantic schemas for the vendor's store document."""

from pydantic import Field

from linkstore.schemas.common import DocumentSchema, Timestamp

DEFAULT_STORE_NAME = "My Store"

# Never written to Firestore
LOCAL_ONLY_FIELDS = {"pending_sync", "username_pending"}


class Store(DocumentSchema):
    """One store per authenticated owner; ``id`` is the owner id."""

    id: str | None = None
    store_name: str | None = DEFAULT_STORE_NAME
    username: str | None = None
    whatsapp_number: str | None = ""
    banner_image: str | None = None
    logo: str | None = None
    description: str | None = None
    store_rating: float = 0
    store_rating_count: int = 0
    user_id: str | None = None
    created_at: Timestamp = None
    updated_at: Timestamp = None

    # Set when the remote write was not accepted
    pending_sync: bool = False
    # The unsynced edit set an explicit username
    username_pending: bool = False


class StoreUpdate(DocumentSchema):
    """Partial store update. Only explicitly set fields are merged."""

    store_name: str | None = Field(default=None, max_length=255)
    username: str | None = Field(default=None, max_length=255)
    whatsapp_number: str | None = Field(default=None, max_length=32)
    banner_image: str | None = None
    logo: str | None = None
    description: str | None = None
    store_rating: float | None = Field(default=None, ge=0, le=5)
    store_rating_count: int | None = Field(default=None, ge=0)
