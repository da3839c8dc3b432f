"""Listing router — harvest intake and the marketplace view.

Endpoints:
    POST  /api/listings               Farmer lists a new batch (batch + root listing)
    GET   /api/listings               Active listings plus the caller's own
    GET   /api/listings/{listing_id}  Listing with batch, journey and children
    PATCH /api/listings/{listing_id}  Reprice / (de)activate (seller only)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.auth.deps import require_permission
from harvestchain.database import get_db
from harvestchain.schemas.auth import Principal
from harvestchain.schemas.batch import BatchOut, CropListingRequest, JourneyEventOut, LedgerOutcomeOut
from harvestchain.schemas.common import PaginatedResponse
from harvestchain.schemas.listing import (
    ListingCreatedOut,
    ListingDetailOut,
    ListingOut,
    ListingSummary,
    ListingUpdate,
)
from harvestchain.services import listings as listing_service
from harvestchain.services.intake import create_batch_and_listing
from harvestchain.services.ledger import LedgerMirror, get_ledger_mirror
from harvestchain.services.proof_storage import ProofStorage, get_proof_storage
from harvestchain.services.traceability import traceability_url

router = APIRouter()


# ── Create (farmer intake) ───────────────────────────────────

@router.post("", response_model=ListingCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_listing(
    body: CropListingRequest,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("batch.create")),
    storage: ProofStorage = Depends(get_proof_storage),
    ledger: LedgerMirror = Depends(get_ledger_mirror),
):
    """Create a batch and its root listing.

    Proof storage and the ledger mirror are both optional here: the batch is
    created either way and ``ledger.tx_ref`` is "pending" when mirroring
    did not happen.
    """
    result = await create_batch_and_listing(db, principal, body, storage, ledger)
    batch = result["batch"]
    return ListingCreatedOut(
        batch=BatchOut.model_validate(batch),
        listing=ListingOut.model_validate(result["listing"]),
        ledger=LedgerOutcomeOut(**result["ledger_outcome"].as_dict()),
        traceability_url=traceability_url(batch.batch_code),
    )


# ── List ─────────────────────────────────────────────────────

@router.get("", response_model=PaginatedResponse[ListingSummary])
async def list_listings(
    active_only: bool = Query(False),
    mine: bool = Query(False),
    crop: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("listing.read")),
):
    items, total = await listing_service.query_listings(
        db,
        viewer_id=principal.id,
        active_only=active_only,
        owned_by=principal.id if mine else None,
        crop=crop,
        limit=limit,
        offset=offset,
    )
    return PaginatedResponse[ListingSummary](
        items=[ListingSummary.model_validate(listing) for listing in items],
        total=total,
        limit=limit,
        offset=offset,
    )


# ── Detail ───────────────────────────────────────────────────

@router.get("/{listing_id}", response_model=ListingDetailOut)
async def get_listing(
    listing_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("listing.read")),
):
    detail = await listing_service.get_listing_detail(db, listing_id, principal.id)
    return ListingDetailOut(
        **ListingOut.model_validate(detail["listing"]).model_dump(),
        batch=BatchOut.model_validate(detail["batch"]),
        journey=[JourneyEventOut.model_validate(e) for e in detail["journey"]],
        child_listing_ids=detail["child_listing_ids"],
    )


# ── Update ───────────────────────────────────────────────────

@router.patch("/{listing_id}", response_model=ListingOut)
async def update_listing(
    listing_id: str,
    body: ListingUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("listing.write")),
):
    listing = await listing_service.update_listing(db, listing_id, principal.id, body)
    return ListingOut.model_validate(listing)
