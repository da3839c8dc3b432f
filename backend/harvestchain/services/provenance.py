"""Provenance store — batches and their append-only journey.

This module is the only writer of ``journey_events``.  Other components
read the journey through ``get_journey`` and never mutate it.

Journey rows are inserted with the next per-batch ``sequence`` number; the
unique (batch_id, sequence) constraint turns a lost race between two
appends into an IntegrityError rather than a silently reordered journey.
"""

import secrets
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.middleware.exceptions import DomainValidationError, ResourceNotFoundError
from harvestchain.models.batch import Batch
from harvestchain.models.journey_event import LEDGER_PENDING, JourneyEvent
from harvestchain.schemas.auth import Principal

HARVEST_ACTION = "Harvested & Listed"
BOUGHT_ACTION = "Bought"


@dataclass
class BatchMetadata:
    """Immutable harvest metadata captured when a batch is created."""
    crop_name: str | None
    quantity: Decimal | None
    harvest_date: date | None
    origin_location: str | None
    fertilizers: list[str] = field(default_factory=list)
    pesticides: list[str] = field(default_factory=list)
    image_url: str | None = None
    proof_image_url: str | None = None
    quality_certificate_url: str | None = None
    fertilizer_proof_url: str | None = None
    pesticide_proof_url: str | None = None
    metadata_ref: str | None = None
    metadata_ref_kind: str = "storage"

    def missing_fields(self) -> list[str]:
        missing = [
            name for name in ("crop_name", "harvest_date", "origin_location")
            if not getattr(self, name)
        ]
        if self.quantity is None or self.quantity <= 0:
            missing.append("quantity")
        return missing


def generate_batch_code() -> str:
    """BATCH-YYYYMMDD-<8 hex>; random suffix keeps codes unique across workers."""
    today = datetime.utcnow().strftime("%Y%m%d")
    return f"BATCH-{today}-{secrets.token_hex(4).upper()}"


async def create_batch(
    db: AsyncSession,
    metadata: BatchMetadata,
    producer: Principal,
    ledger_tx_ref: str | None = None,
    batch_code: str | None = None,
) -> Batch:
    """Create a batch and seed its journey with the harvest event.

    Raises:
        DomainValidationError if required metadata is missing.
    """
    missing = metadata.missing_fields()
    if missing:
        raise DomainValidationError(f"Missing required batch metadata: {', '.join(missing)}")

    batch = Batch(
        batch_code=batch_code or generate_batch_code(),
        crop_name=metadata.crop_name,
        quantity_initial=metadata.quantity,
        harvest_date=metadata.harvest_date,
        origin_location=metadata.origin_location,
        producer_id=producer.id,
        fertilizers=list(metadata.fertilizers),
        pesticides=list(metadata.pesticides),
        image_url=metadata.image_url,
        proof_image_url=metadata.proof_image_url,
        quality_certificate_url=metadata.quality_certificate_url,
        fertilizer_proof_url=metadata.fertilizer_proof_url,
        pesticide_proof_url=metadata.pesticide_proof_url,
        metadata_ref=metadata.metadata_ref,
        metadata_ref_kind=metadata.metadata_ref_kind,
    )
    db.add(batch)
    await db.flush()  # populate batch.id

    db.add(JourneyEvent(
        batch_id=batch.id,
        sequence=1,
        handler_id=producer.id,
        role=producer.role.value,
        action=HARVEST_ACTION,
        quantity=metadata.quantity,
        ledger_tx_ref=ledger_tx_ref or LEDGER_PENDING,
    ))
    await db.flush()
    return batch


async def get_batch(db: AsyncSession, batch_ref: str) -> Batch:
    """Look a batch up by internal id or public batch code."""
    batch = (
        await db.execute(
            select(Batch).where(or_(Batch.id == batch_ref, Batch.batch_code == batch_ref))
        )
    ).scalar_one_or_none()
    if not batch:
        raise ResourceNotFoundError("Batch", batch_ref)
    return batch


async def append_journey_event(
    db: AsyncSession,
    batch_id: str,
    handler_id: str,
    role: str,
    action: str,
    ledger_tx_ref: str | None = None,
    quantity: Decimal | None = None,
) -> JourneyEvent:
    """Append one event to a batch journey.

    Must be called even when the ledger mirror failed; pass
    ``ledger_tx_ref=None`` (stored as "pending") in that case.
    """
    exists = await db.scalar(select(Batch.id).where(Batch.id == batch_id))
    if not exists:
        raise ResourceNotFoundError("Batch", batch_id)

    last_sequence = await db.scalar(
        select(func.max(JourneyEvent.sequence)).where(JourneyEvent.batch_id == batch_id)
    )
    event = JourneyEvent(
        batch_id=batch_id,
        sequence=(last_sequence or 0) + 1,
        handler_id=handler_id,
        role=role,
        action=action,
        quantity=quantity,
        ledger_tx_ref=ledger_tx_ref or LEDGER_PENDING,
    )
    db.add(event)
    await db.flush()
    return event


async def get_journey(db: AsyncSession, batch_id: str) -> AsyncIterator[JourneyEvent]:
    """Yield a batch's journey in order.

    Each call re-reads the table, so iterating again gives the current
    journey; the result is always finite.
    """
    result = await db.stream_scalars(
        select(JourneyEvent)
        .where(JourneyEvent.batch_id == batch_id)
        .order_by(JourneyEvent.sequence.asc())
    )
    try:
        async for event in result:
            yield event
    finally:
        await result.close()


async def load_journey(db: AsyncSession, batch_id: str) -> list[JourneyEvent]:
    return [event async for event in get_journey(db, batch_id)]
