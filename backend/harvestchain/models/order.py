"""Order — a buyer's request to acquire quantity from a Listing.

Lifecycle:  pending → approved → transferred
                    ↘ rejected

``rejected`` and ``transferred`` are terminal.  Orders are never deleted;
once terminal they are the audit trail of the trade.  ``seller_id`` and
``total_price`` are frozen at creation.
"""

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvestchain.database import Base
from harvestchain.models.types import Quantity


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    TRANSFERRED = "transferred"


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    listing_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("listings.id"), nullable=False, index=True
    )

    # ── Parties ──────────────────────────────────────────────
    buyer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    buyer_role: Mapped[str] = mapped_column(String(30), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Terms (frozen at creation) ───────────────────────────
    quantity_requested: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(16, 2), nullable=False)

    # pending | approved | rejected | transferred
    status: Mapped[str] = mapped_column(
        String(20), default=OrderStatus.PENDING.value, index=True
    )

    # ── Completion ───────────────────────────────────────────
    payment_ref: Mapped[str | None] = mapped_column(String(128))
    child_listing_id: Mapped[str | None] = mapped_column(String(36))
    ledger_tx_ref: Mapped[str | None] = mapped_column(String(128))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    listing = relationship("Listing", back_populates="orders")
