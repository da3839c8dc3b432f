"""Listing store.

All quantity decrements go through ``reduce_quantity``: a single
conditional UPDATE that only matches while enough stock is left, so two
concurrent decrements can never drive ``quantity_available`` below zero.
The same statement switches the listing off when it reaches zero.
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from harvestchain.middleware.exceptions import (
    AuthorizationError,
    DomainValidationError,
    InsufficientQuantityError,
    InvalidStateError,
    ResourceNotFoundError,
)
from harvestchain.models.batch import Batch
from harvestchain.models.listing import Listing
from harvestchain.schemas.listing import ListingUpdate
from harvestchain.services.provenance import load_journey

logger = logging.getLogger(__name__)


async def create_listing(
    db: AsyncSession,
    batch_id: str,
    seller_id: str,
    parent_id: str | None,
    quantity: Decimal,
    price: Decimal,
    active: bool = True,
    order_id: str | None = None,
    ledger_record_id: str | None = None,
) -> Listing:
    if quantity is None or quantity < 0:
        raise DomainValidationError("Listing quantity cannot be negative")
    if price is None or price <= 0:
        raise DomainValidationError("Listing price must be positive")

    listing = Listing(
        batch_id=batch_id,
        seller_id=seller_id,
        parent_listing_id=parent_id,
        order_id=order_id,
        ledger_record_id=ledger_record_id,
        quantity_available=quantity,
        price_per_kg=price,
        # A listing with nothing to sell is never active
        is_active=bool(active and quantity > 0),
    )
    db.add(listing)
    await db.flush()
    return listing


async def get_listing(db: AsyncSession, listing_id: str) -> Listing:
    listing = await db.get(Listing, listing_id)
    if not listing:
        raise ResourceNotFoundError("Listing", listing_id)
    return listing


async def reduce_quantity(db: AsyncSession, listing_id: str, amount: Decimal) -> Listing:
    """Atomically take ``amount`` off a listing.

    Raises:
        InsufficientQuantityError if fewer than ``amount`` units remain at
        the moment the UPDATE runs.
        ResourceNotFoundError if the listing does not exist.
    """
    if amount is None or amount <= 0:
        raise DomainValidationError("Quantity to reduce must be positive")

    result = await db.execute(
        update(Listing)
        .where(Listing.id == listing_id, Listing.quantity_available >= amount)
        .values(
            quantity_available=Listing.quantity_available - amount,
            is_active=case(
                (Listing.quantity_available == amount, False), else_=Listing.is_active
            ),
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        current = await db.get(Listing, listing_id, populate_existing=True)
        if current is None:
            raise ResourceNotFoundError("Listing", listing_id)
        raise InsufficientQuantityError(
            f"Listing {listing_id} has {current.quantity_available} available, "
            f"cannot reduce by {amount}"
        )

    # Reload so the caller sees the values the UPDATE wrote
    return await db.get(Listing, listing_id, populate_existing=True)


async def update_listing(
    db: AsyncSession,
    listing_id: str,
    requestor_id: str,
    changes: ListingUpdate,
) -> Listing:
    listing = await get_listing(db, listing_id)
    if listing.seller_id != requestor_id:
        raise AuthorizationError("Only the seller can update this listing")

    if changes.price_per_kg is not None:
        if changes.price_per_kg <= 0:
            raise DomainValidationError("Listing price must be positive")
        listing.price_per_kg = changes.price_per_kg

    if changes.is_active is not None:
        if changes.is_active and listing.quantity_available <= 0:
            raise InvalidStateError("Cannot activate a listing with no quantity available")
        listing.is_active = changes.is_active

    await db.flush()
    await db.refresh(listing)
    logger.info("Listing %s updated by %s", listing_id, requestor_id)
    return listing


async def query_listings(
    db: AsyncSession,
    viewer_id: str,
    active_only: bool = False,
    owned_by: str | None = None,
    crop: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Listing], int]:
    """Listings visible to ``viewer_id``: every active listing plus the viewer's own.

    Returns (page, total) with ``batch`` eagerly loaded on each listing.
    """
    filters = [or_(Listing.is_active == True, Listing.seller_id == viewer_id)]  # noqa: E712
    if active_only:
        filters.append(Listing.is_active == True)  # noqa: E712
    if owned_by:
        filters.append(Listing.seller_id == owned_by)
    if crop:
        filters.append(Batch.crop_name.ilike(f"%{crop}%"))

    base = select(Listing).join(Batch, Listing.batch_id == Batch.id).where(*filters)

    total = await db.scalar(select(func.count()).select_from(base.subquery()))

    result = await db.execute(
        base.options(selectinload(Listing.batch))
        .order_by(Listing.created_at.desc(), Listing.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total or 0


async def get_listing_detail(db: AsyncSession, listing_id: str, viewer_id: str) -> dict:
    """Listing with its batch, the batch journey, and child listing ids.

    Inactive listings are only visible to their seller; anyone else gets
    the same not-found as for a missing id.

    Returns:
        {"listing": Listing, "batch": Batch, "journey": [JourneyEvent],
         "child_listing_ids": [str]}
    """
    listing = (
        await db.execute(
            select(Listing)
            .where(Listing.id == listing_id)
            .options(selectinload(Listing.batch))
        )
    ).scalar_one_or_none()
    if not listing or (not listing.is_active and listing.seller_id != viewer_id):
        raise ResourceNotFoundError("Listing", listing_id)

    children = await db.scalars(
        select(Listing.id)
        .where(Listing.parent_listing_id == listing_id)
        .order_by(Listing.created_at)
    )
    return {
        "listing": listing,
        "batch": listing.batch,
        "journey": await load_journey(db, listing.batch_id),
        "child_listing_ids": list(children.all()),
    }
