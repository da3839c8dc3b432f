"""Pydantic schemas for batch intake and traceability."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


# ── Intake (farmer lists a fresh harvest) ────────────────────

class OriginLocation(BaseModel):
    """Structured origin as sent by map-based clients."""
    address: str | None = None
    district: str | None = None
    state: str | None = None
    lat: float | None = None
    lon: float | None = None

    def as_text(self) -> str:
        parts = [p for p in (self.address, self.district, self.state) if p]
        if parts:
            return ", ".join(parts)
        if self.lat is not None and self.lon is not None:
            return f"{self.lat:.5f},{self.lon:.5f}"
        return ""


class CropListingRequest(BaseModel):
    """Payload for POST /api/listings: a new batch and its root listing.

    ``origin_location`` may be a plain string or an OriginLocation object;
    either way it is stored as text.  Quality input lists default to empty
    and every proof URL is optional (upload through /api/uploads/proof
    first).
    """
    crop_name: str = Field(..., min_length=1, max_length=100)
    quantity: Decimal = Field(..., gt=0, max_digits=14, decimal_places=3)
    price_per_kg: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    harvest_date: date
    origin_location: str = Field(..., min_length=1, max_length=255)

    fertilizers: list[str] = []
    pesticides: list[str] = []
    image_url: str | None = None
    proof_image_url: str | None = None
    quality_certificate_url: str | None = None
    fertilizer_proof_url: str | None = None
    pesticide_proof_url: str | None = None

    @field_validator("origin_location", mode="before")
    @classmethod
    def _flatten_origin(cls, value):
        if isinstance(value, dict):
            return OriginLocation.model_validate(value).as_text()
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("fertilizers", "pesticides", mode="before")
    @classmethod
    def _split_inputs(cls, value):
        # Forms send "Urea, DAP"
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return value or []


# ── Response ─────────────────────────────────────────────────

class JourneyEventOut(BaseModel):
    sequence: int
    handler_id: str
    role: str
    action: str
    quantity: Decimal | None = None
    ledger_tx_ref: str
    recorded_at: datetime

    model_config = {"from_attributes": True}


class BatchOut(BaseModel):
    id: str
    batch_code: str
    crop_name: str
    quantity_initial: Decimal
    harvest_date: date
    origin_location: str
    producer_id: str
    fertilizers: list[str] | None = None
    pesticides: list[str] | None = None
    image_url: str | None = None
    proof_image_url: str | None = None
    quality_certificate_url: str | None = None
    fertilizer_proof_url: str | None = None
    pesticide_proof_url: str | None = None
    metadata_ref: str | None = None
    metadata_ref_kind: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class LedgerOutcomeOut(BaseModel):
    operation: str
    attempted: bool
    succeeded: bool
    tx_ref: str
    error: str | None = None


# ── Traceability (local journey + ledger mirror) ─────────────

class LedgerRecordOut(BaseModel):
    batch_id: str
    parent_batch_id: str | None = None
    quantity: Decimal
    holder_ref: str
    data_hash: str | None = None
    status: int
    history: list[dict] = []


class TraceabilityOut(BaseModel):
    """Local section is always present; ``ledger`` is null when the mirror is unreachable."""
    batch: BatchOut
    journey: list[JourneyEventOut]
    ledger: LedgerRecordOut | None = None
    ledger_error: str | None = None
