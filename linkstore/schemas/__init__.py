"""Pydantic schemas for store, product, analytics and sync results."""

from linkstore.schemas.analytics import Analytics
from linkstore.schemas.common import BaseSchema, DocumentSchema
from linkstore.schemas.product import Product, ProductCreate, ProductUpdate
from linkstore.schemas.store import Store, StoreUpdate
from linkstore.schemas.storefront import Storefront
from linkstore.schemas.sync import SyncOrigin, SyncResult

__all__ = [
    "Analytics",
    "BaseSchema",
    "DocumentSchema",
    "Product",
    "ProductCreate",
    "ProductUpdate",
    "Store",
    "StoreUpdate",
    "Storefront",
    "SyncOrigin",
    "SyncResult",
]
