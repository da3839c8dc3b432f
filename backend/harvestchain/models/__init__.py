"""Aggregate model imports for Alembic auto-detection."""

from harvestchain.models.batch import Batch  # noqa: F401
from harvestchain.models.journey_event import JourneyEvent, LEDGER_PENDING  # noqa: F401
from harvestchain.models.listing import Listing  # noqa: F401
from harvestchain.models.order import Order, OrderStatus  # noqa: F401

__all__ = [
    "Batch", "JourneyEvent", "Listing", "Order",
    "OrderStatus", "LEDGER_PENDING",
]
