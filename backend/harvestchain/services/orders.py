"""Order workflow — create, approve/reject, complete.

Completion is the one multi-step operation in the system:

  1. order must be approved; actor must be the buyer or the seller
  2. re-read the parent listing; stock must still cover the order
  3. whole transfer if available == requested (exact), else split
  4. mirror the transfer/split onto the ledger (best-effort, never fatal)
  5. claim the order: approved → transferred (+ payment ref), conditionally
  6. reduce_quantity on the parent listing (compare-and-decrement)
  7. append a "Bought" journey event for the buyer
  8. create the buyer's child listing (inactive, parent price)

Steps 5–8 share one database transaction.  Nothing is locked across the
ledger call; step 6's conditional UPDATE is what keeps two completions on
the same listing from overselling it.  If another completion consumed the
stock after step 2, step 6 matches no row and the whole transaction is
rolled back with InsufficientStockError.  Step 5 is conditional the same
way: of two completions of one order only the first to claim it proceeds,
the other is rolled back with InvalidStateError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.middleware.exceptions import (
    AuthorizationError,
    DomainValidationError,
    FatalCompletionError,
    HarvestChainException,
    InsufficientQuantityError,
    InsufficientStockError,
    InvalidStateError,
    ResourceNotFoundError,
)
from harvestchain.models.batch import Batch
from harvestchain.models.listing import Listing
from harvestchain.models.order import Order, OrderStatus
from harvestchain.schemas.auth import Principal
from harvestchain.services.ledger import LedgerMirror, LedgerOutcome, participant_ref
from harvestchain.services.listings import create_listing, get_listing, reduce_quantity
from harvestchain.services.provenance import BOUGHT_ACTION, append_journey_event
from harvestchain.services.traceability import invalidate_traceability

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass
class CompletionResult:
    order: Order
    child_listing_id: str
    ledger_outcome: LedgerOutcome


def split_record_id(batch_code: str, order_id: str) -> str:
    """Ledger key of the child record carved out by a split."""
    return f"{batch_code}-{order_id.replace('-', '')[:8]}"


async def _get_order(db: AsyncSession, order_id: str) -> Order:
    order = await db.get(Order, order_id, populate_existing=True)
    if not order:
        raise ResourceNotFoundError("Order", order_id)
    return order


# ── Create ───────────────────────────────────────────────────


async def create_order(
    db: AsyncSession,
    listing_id: str,
    buyer: Principal,
    quantity: Decimal,
) -> Order:
    """Place an order against a listing.

    The listing is not touched: quantity is only taken at completion, so
    several open orders may together ask for more than is available.
    """
    if quantity is None or quantity <= 0:
        raise DomainValidationError("Order quantity must be positive")

    listing = await get_listing(db, listing_id)
    if not listing.is_active:
        raise InvalidStateError("Listing is not active")
    if listing.seller_id == buyer.id:
        raise DomainValidationError("You cannot order from your own listing")
    if quantity > listing.quantity_available:
        raise InsufficientQuantityError(
            f"Requested {quantity} exceeds available {listing.quantity_available}"
        )

    order = Order(
        listing_id=listing.id,
        buyer_id=buyer.id,
        buyer_role=buyer.role.value,
        seller_id=listing.seller_id,
        quantity_requested=quantity,
        total_price=(quantity * listing.price_per_kg).quantize(CENTS),
        status=OrderStatus.PENDING.value,
    )
    db.add(order)
    await db.flush()

    logger.info(
        "Order %s placed by %s for %s from listing %s",
        order.id, buyer.id, quantity, listing.id,
    )
    return order


# ── Approve / reject ─────────────────────────────────────────


async def set_status(
    db: AsyncSession,
    order_id: str,
    actor: Principal,
    new_status: str,
) -> Order:
    if new_status not in (OrderStatus.APPROVED.value, OrderStatus.REJECTED.value):
        raise DomainValidationError(f"Cannot set order status to {new_status!r}")

    order = await _get_order(db, order_id)
    if order.seller_id != actor.id:
        raise AuthorizationError("Only the seller can approve or reject this order")
    if order.status != OrderStatus.PENDING.value:
        raise InvalidStateError(f"Order is already {order.status}")

    order.status = new_status
    await db.flush()
    await db.refresh(order)

    logger.info("Order %s %s by %s", order_id, new_status, actor.id)
    return order


# ── Complete ─────────────────────────────────────────────────


async def complete_order(
    db: AsyncSession,
    order_id: str,
    actor: Principal,
    ledger: LedgerMirror,
    payment_ref: str | None = None,
) -> CompletionResult:
    """Run the completion sequence and commit it.

    Raises:
        InvalidStateError       order is not approved, or was completed concurrently
        AuthorizationError      actor is neither buyer nor seller
        InsufficientStockError  stock no longer covers the order
        FatalCompletionError    a local step failed after the ledger step
    """
    # ── 1. State and actor ───────────────────────────────────
    order = await _get_order(db, order_id)
    if order.status != OrderStatus.APPROVED.value:
        raise InvalidStateError(f"Order must be approved to complete (is {order.status})")
    if actor.id not in (order.buyer_id, order.seller_id):
        raise AuthorizationError("Only the buyer or the seller can complete this order")

    # ── 2. Authoritative re-read of the parent listing ───────
    parent = await db.get(Listing, order.listing_id, populate_existing=True)
    if parent is None:
        raise ResourceNotFoundError("Listing", order.listing_id)
    if parent.quantity_available < order.quantity_requested:
        raise InsufficientStockError()

    batch = await db.get(Batch, parent.batch_id)
    quantity = order.quantity_requested
    price = parent.price_per_kg
    buyer_id = order.buyer_id
    buyer_role = order.buyer_role
    batch_id = batch.id
    batch_code = batch.batch_code
    parent_id = parent.id
    parent_record = parent.ledger_record_id or batch_code

    # ── 3. Whole transfer or split (exact comparison) ────────
    whole = parent.quantity_available == quantity

    # ── 4. Ledger mirror (best-effort) ───────────────────────
    context = {"order_id": order_id, "listing_id": parent_id, "batch_code": batch_code}
    to_ref = participant_ref(buyer_role, buyer_id)
    if whole:
        child_record = parent_record
        outcome = await ledger.mirror_call(
            "transfer_record", context=context,
            batch_id=parent_record, to_ref=to_ref,
        )
    else:
        child_record = split_record_id(batch_code, order_id)
        outcome = await ledger.mirror_call(
            "split_record", context=context,
            parent_batch_id=parent_record,
            child_batch_id=child_record,
            quantity=quantity,
            to_ref=to_ref,
            data_hash=batch.metadata_ref or "",
        )
    tx_ref = outcome.tx_ref

    # ── 5–8. One local transaction ───────────────────────────
    step = "claim_order"
    try:
        values = {
            "status": OrderStatus.TRANSFERRED.value,
            "ledger_tx_ref": tx_ref,
            "updated_at": datetime.utcnow(),
        }
        if payment_ref:
            values["payment_ref"] = payment_ref
        claimed = await db.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.APPROVED.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            raise InvalidStateError("Order was already completed")

        step = "reduce_quantity"
        await reduce_quantity(db, parent_id, quantity)

        step = "append_journey_event"
        await append_journey_event(
            db, batch_id, buyer_id, buyer_role, BOUGHT_ACTION,
            ledger_tx_ref=tx_ref, quantity=quantity,
        )

        step = "create_child_listing"
        child = await create_listing(
            db, batch_id, buyer_id, parent_id, quantity, price,
            active=False, order_id=order_id, ledger_record_id=child_record,
        )
        child_id = child.id
        await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(child_listing_id=child_id)
            .execution_options(synchronize_session=False)
        )

        step = "commit"
        await db.commit()
    except InvalidStateError:
        await db.rollback()
        logger.warning(
            "Order %s was completed concurrently; discarding this attempt (ledger_tx_ref=%s)",
            order_id, tx_ref,
        )
        raise
    except InsufficientQuantityError:
        await db.rollback()
        logger.warning(
            "Order %s lost the race for listing %s; %s no longer available",
            order_id, parent_id, quantity,
        )
        raise InsufficientStockError()
    except (SQLAlchemyError, HarvestChainException) as exc:
        await db.rollback()
        logger.error(
            "FATAL: order %s failed at %s after ledger step "
            "(ledger_tx_ref=%s, listing=%s, batch=%s): %s",
            order_id, step, tx_ref, parent_id, batch_code, exc,
            exc_info=True,
        )
        raise FatalCompletionError(order_id, step, tx_ref) from exc

    await invalidate_traceability(batch_id)
    order = await _get_order(db, order_id)

    logger.info(
        "Order %s transferred: %s of listing %s to %s (child listing %s, %s)",
        order_id, quantity, parent_id, buyer_id, child_id,
        "transfer" if whole else "split",
    )
    return CompletionResult(order=order, child_listing_id=child_id, ledger_outcome=outcome)


# ── Read ─────────────────────────────────────────────────────


async def list_orders(db: AsyncSession, user_id: str) -> dict:
    """Orders the user placed (purchases) and received (sales), newest first."""
    purchases = await db.scalars(
        select(Order).where(Order.buyer_id == user_id).order_by(Order.created_at.desc())
    )
    sales = await db.scalars(
        select(Order).where(Order.seller_id == user_id).order_by(Order.created_at.desc())
    )
    return {"purchases": list(purchases.all()), "sales": list(sales.all())}


async def get_order(db: AsyncSession, order_id: str, viewer_id: str) -> Order:
    order = await _get_order(db, order_id)
    if viewer_id not in (order.buyer_id, order.seller_id):
        raise AuthorizationError("Only the buyer or the seller can view this order")
    return order
