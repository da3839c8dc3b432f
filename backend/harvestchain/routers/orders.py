"""Order router — buying from a listing.

Endpoints:
    POST /api/orders                      Place an order (buyer)
    GET  /api/orders                      {purchases, sales} for the caller
    GET  /api/orders/{order_id}           Order detail (buyer or seller)
    PUT  /api/orders/{order_id}/status    Approve / reject (seller)
    POST /api/orders/{order_id}/complete  Transfer ownership after payment
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.auth.deps import require_permission
from harvestchain.database import get_db
from harvestchain.schemas.auth import Principal
from harvestchain.schemas.batch import LedgerOutcomeOut
from harvestchain.schemas.order import (
    OrderComplete,
    OrderCompletionOut,
    OrderCreate,
    OrderOut,
    OrdersOut,
    OrderStatusUpdate,
)
from harvestchain.services import orders as order_service
from harvestchain.services.ledger import LedgerMirror, get_ledger_mirror

router = APIRouter()


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def create_order(
    body: OrderCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("order.create")),
):
    order = await order_service.create_order(db, body.listing_id, principal, body.quantity)
    return OrderOut.model_validate(order)


@router.get("", response_model=OrdersOut)
async def list_orders(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("order.create")),
):
    orders = await order_service.list_orders(db, principal.id)
    return OrdersOut(
        purchases=[OrderOut.model_validate(o) for o in orders["purchases"]],
        sales=[OrderOut.model_validate(o) for o in orders["sales"]],
    )


@router.get("/{order_id}", response_model=OrderOut)
async def get_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("order.create")),
):
    order = await order_service.get_order(db, order_id, principal.id)
    return OrderOut.model_validate(order)


@router.put("/{order_id}/status", response_model=OrderOut)
async def set_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("order.manage")),
):
    order = await order_service.set_status(db, order_id, principal, body.status)
    return OrderOut.model_validate(order)


@router.post("/{order_id}/complete", response_model=OrderCompletionOut)
async def complete_order(
    order_id: str,
    body: OrderComplete | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission("order.manage")),
    ledger: LedgerMirror = Depends(get_ledger_mirror),
):
    """Complete an approved order.

    A ledger mirror failure does not fail the request: the response's
    ``ledger.tx_ref`` is "pending" and the journey records it the same way.
    A 500 with code FATAL_COMPLETION means nothing was applied locally and
    the completion must be retried.  A 409 INVALID_STATE after approval
    means the other party completed the order first.
    """
    result = await order_service.complete_order(
        db, order_id, principal, ledger,
        payment_ref=body.payment_ref if body else None,
    )
    return OrderCompletionOut(
        order=OrderOut.model_validate(result.order),
        child_listing_id=result.child_listing_id,
        ledger=LedgerOutcomeOut(**result.ledger_outcome.as_dict()),
    )
