"""Per-store analytics counters kept on the device."""

from linkstore.core.timestamps import utc_now_iso
from linkstore.schemas.common import DocumentSchema, Timestamp, round_half_up


def conversion_rate(total_orders: int, total_clicks: int) -> float:
    """Orders per click as a percentage, one decimal. Zero without clicks."""
    if total_clicks <= 0:
        return 0.0
    return round_half_up(total_orders / total_clicks * 100)


class Analytics(DocumentSchema):
    """Derived analytics; recomputed locally, never authoritative across devices."""

    total_products: int = 0
    total_clicks: int = 0
    total_orders: int = 0
    conversion_rate: float = 0
    last_updated: Timestamp = None

    def recompute(
        self,
        *,
        total_products: int | None = None,
        clicks: int = 0,
        orders: int = 0,
    ) -> "Analytics":
        """Return a new snapshot with counters advanced and the rate recomputed."""
        total_clicks = self.total_clicks + clicks
        total_orders = self.total_orders + orders
        return self.model_copy(
            update={
                "total_products": self.total_products if total_products is None else total_products,
                "total_clicks": total_clicks,
                "total_orders": total_orders,
                "conversion_rate": conversion_rate(total_orders, total_clicks),
                "last_updated": utc_now_iso(),
            }
        )
