"""Common Pydantic schemas and field types shared by the document models."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel

from linkstore.core.timestamps import normalize_timestamp

# Server timestamps are cached as ISO strings
Timestamp = Annotated[str | None, BeforeValidator(normalize_timestamp)]


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class DocumentSchema(BaseSchema):
    """Shape of a Firestore document.

    Fields are snake_case in Python and camelCase in Firestore and in the
    local cache. Instances are frozen so that state handed to callers is a
    snapshot they cannot mutate.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        frozen=True,
        extra="ignore",
    )

    def to_document(self, *, exclude: set[str] | None = None) -> dict[str, Any]:
        """Dump to a JSON-safe camelCase dict."""
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)

    def changes(self, *, by_alias: bool = False) -> dict[str, Any]:
        """Explicitly set fields only."""
        return self.model_dump(exclude_unset=True, by_alias=by_alias, mode="json")


def round_half_up(value: float, places: str = "0.1") -> float:
    """Round to one decimal, halves away from zero (4.25 -> 4.3)."""
    return float(Decimal(str(value)).quantize(Decimal(places), rounding=ROUND_HALF_UP))
