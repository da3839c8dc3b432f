"""JourneyEvent — append-only provenance log of a batch.

Each row records one change of holder (or the initial harvest).  Rows are
only ever inserted; ``sequence`` is 1-based and unique per batch, so the
journey read back in sequence order is stable across calls.

``ledger_tx_ref`` holds the ledger-mirror transaction reference, or
``"pending"`` when the mirror call failed, timed out, or was skipped.  The
off-chain journey is authoritative either way.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvestchain.database import Base
from harvestchain.models.types import Quantity

LEDGER_PENDING = "pending"


class JourneyEvent(Base):
    __tablename__ = "journey_events"
    __table_args__ = (
        UniqueConstraint("batch_id", "sequence", name="uq_journey_batch_sequence"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    batch_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("batches.id"), nullable=False, index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    # ── Who / what ───────────────────────────────────────────
    handler_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    # farmer | distributor | retailer | consumer
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    # "Harvested & Listed", "Bought", ...
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    # Quantity (kg) moved by this event, when applicable
    quantity: Mapped[Decimal | None] = mapped_column(Quantity)

    ledger_tx_ref: Mapped[str] = mapped_column(String(128), default=LEDGER_PENDING)

    recorded_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False, index=True
    )

    batch = relationship("Batch", back_populates="journey")
