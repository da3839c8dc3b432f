"""Batch — one harvested lot with a permanent identity.

A Batch is created once, by the producing farmer, together with its root
Listing.  Its identity (``batch_code``) stays constant as the produce
changes hands; ownership fragments are tracked by the Listing tree and every
change of holder is appended to the batch journey.

Everything on this row is immutable after creation.  The only thing that
grows is the journey (see JourneyEvent).
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Date, DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from harvestchain.database import Base
from harvestchain.models.types import Quantity


class Batch(Base):
    __tablename__ = "batches"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    # Public batch id, also the record key on the ledger mirror
    batch_code: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True
    )

    # ── Harvest details ──────────────────────────────────────
    crop_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    quantity_initial: Mapped[Decimal] = mapped_column(Quantity, nullable=False)
    harvest_date: Mapped[date] = mapped_column(Date, nullable=False)
    origin_location: Mapped[str] = mapped_column(String(255), nullable=False)
    producer_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # ── Quality inputs ───────────────────────────────────────
    # JSON lists: ["Urea", "DAP"], ["Neem Oil"]
    fertilizers: Mapped[list | None] = mapped_column(JSON, default=list)
    pesticides: Mapped[list | None] = mapped_column(JSON, default=list)

    # ── Proof references (URLs returned by proof storage) ────
    image_url: Mapped[str | None] = mapped_column(String(512))
    proof_image_url: Mapped[str | None] = mapped_column(String(512))
    quality_certificate_url: Mapped[str | None] = mapped_column(String(512))
    fertilizer_proof_url: Mapped[str | None] = mapped_column(String(512))
    pesticide_proof_url: Mapped[str | None] = mapped_column(String(512))

    # Reference of the stored metadata document, or its local fingerprint
    # when proof storage was unavailable at creation time.
    metadata_ref: Mapped[str | None] = mapped_column(String(128))
    # storage | fingerprint
    metadata_ref_kind: Mapped[str] = mapped_column(String(20), default="storage")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    # lazy="select": load explicitly with selectinload() where needed.
    journey = relationship(
        "JourneyEvent", back_populates="batch",
        order_by="JourneyEvent.sequence",
    )
    listings = relationship("Listing", back_populates="batch")
