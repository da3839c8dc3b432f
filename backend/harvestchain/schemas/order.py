"""Pydantic schemas for the order workflow."""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

from harvestchain.schemas.batch import LedgerOutcomeOut


class OrderCreate(BaseModel):
    listing_id: str
    quantity: Decimal = Field(..., gt=0, max_digits=14, decimal_places=3)


class OrderStatusUpdate(BaseModel):
    status: Literal["approved", "rejected"]


class OrderComplete(BaseModel):
    # Reference handed back by the payment gateway; recorded, never verified here
    payment_ref: str | None = Field(None, max_length=128)


class OrderOut(BaseModel):
    id: str
    listing_id: str
    buyer_id: str
    buyer_role: str
    seller_id: str
    quantity_requested: Decimal
    total_price: Decimal
    status: str
    payment_ref: str | None = None
    child_listing_id: str | None = None
    ledger_tx_ref: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrdersOut(BaseModel):
    purchases: list[OrderOut]
    sales: list[OrderOut]


class OrderCompletionOut(BaseModel):
    order: OrderOut
    child_listing_id: str
    ledger: LedgerOutcomeOut
