"""Pydantic schemas for listings."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from harvestchain.schemas.batch import BatchOut, JourneyEventOut, LedgerOutcomeOut


# ── Update (partial, seller only) ────────────────────────────

class ListingUpdate(BaseModel):
    price_per_kg: Decimal | None = Field(None, gt=0, max_digits=12, decimal_places=2)
    is_active: bool | None = None

    @model_validator(mode="after")
    def something_to_update(self):
        if self.price_per_kg is None and self.is_active is None:
            raise ValueError("Provide price_per_kg and/or is_active")
        return self


# ── Response ─────────────────────────────────────────────────

class ListingOut(BaseModel):
    id: str
    batch_id: str
    seller_id: str
    parent_listing_id: str | None
    order_id: str | None = None
    ledger_record_id: str | None = None
    quantity_available: Decimal
    price_per_kg: Decimal
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ListingSummary(ListingOut):
    batch_code: str | None = None
    crop_name: str | None = None
    origin_location: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _extract_batch(cls, data):
        if hasattr(data, "batch") and data.batch:
            data.__dict__["batch_code"] = data.batch.batch_code
            data.__dict__["crop_name"] = data.batch.crop_name
            data.__dict__["origin_location"] = data.batch.origin_location
        return data


class ListingDetailOut(ListingOut):
    batch: BatchOut
    journey: list[JourneyEventOut] = []
    child_listing_ids: list[str] = []


class ListingCreatedOut(BaseModel):
    """Response from POST /api/listings."""
    batch: BatchOut
    listing: ListingOut
    ledger: LedgerOutcomeOut
    traceability_url: str
