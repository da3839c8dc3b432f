"""Listing — a sellable claim over some quantity of a Batch.

Listings form a tree per batch: the root listing is created with the batch
and holds the full harvested quantity; every completed order carves a child
listing (owned by the buyer, initially inactive) out of its parent.

Invariants:
  - quantity_available >= 0
  - quantity_available == 0  implies  is_active is False
  - quantity removed from a listing == sum of its children's initial quantity

``quantity_available`` is only ever decremented through
``services.listings.reduce_quantity`` (a single conditional UPDATE).
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvestchain.database import Base
from harvestchain.models.types import Quantity


class Listing(Base):
    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("quantity_available >= 0", name="ck_listing_quantity_non_negative"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )

    # ── Lineage ──────────────────────────────────────────────
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )
    parent_listing_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("listings.id"), index=True
    )
    # Completed order that produced this child listing (null for roots)
    order_id: Mapped[str | None] = mapped_column(String(36), unique=True)
    # Record key on the ledger mirror: the batch code for roots, a derived
    # child id after a split, the parent's key after a whole transfer
    ledger_record_id: Mapped[str | None] = mapped_column(String(96))

    seller_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Stock / price ────────────────────────────────────────
    quantity_available: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    price_per_kg: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    batch = relationship("Batch", back_populates="listings")
    parent = relationship("Listing", remote_side="Listing.id", back_populates="children")
    children = relationship("Listing", back_populates="parent")
    orders = relationship("Order", back_populates="listing")
