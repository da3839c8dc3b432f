"""Public traceability view of a batch.

The local section (batch + journey) always comes from our database.  The
ledger section is read from the mirror for display only; if the mirror is
down the view is returned without it and ``ledger_error`` says why.

Views are cached in Redis by batch id and dropped whenever the journey
grows (see ``invalidate_traceability``).
"""

import asyncio
import logging
from dataclasses import asdict

from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.config import settings
from harvestchain.middleware.exceptions import ResourceNotFoundError
from harvestchain.models.batch import Batch
from harvestchain.schemas.batch import BatchOut, JourneyEventOut, LedgerRecordOut, TraceabilityOut
from harvestchain.services.ledger import LedgerMirror, LedgerUnavailableError
from harvestchain.services.provenance import load_journey
from harvestchain.utils.cache import cached, invalidate_cache

logger = logging.getLogger(__name__)

CACHE_PREFIX = "traceability"


def traceability_url(batch_code: str) -> str:
    """Public page a QR code on the produce points to."""
    return f"{settings.public_base_url.rstrip('/')}/trace/{batch_code}"


def _view_key(*args, batch_id: str, **kwargs) -> str:
    return f"{CACHE_PREFIX}:{batch_id}"


async def _read_ledger(ledger: LedgerMirror, record_id: str) -> tuple[LedgerRecordOut | None, str | None]:
    try:
        record = await asyncio.wait_for(ledger.read_record(record_id), timeout=ledger.timeout)
    except asyncio.TimeoutError:
        logger.warning("Ledger read for %s timed out after %.1fs", record_id, ledger.timeout)
        return None, "Ledger read timed out"
    except LedgerUnavailableError as exc:
        logger.warning("Ledger read for %s failed: %s", record_id, exc)
        return None, str(exc)
    return LedgerRecordOut(**asdict(record)), None


@cached(ttl=settings.traceability_cache_ttl, prefix=CACHE_PREFIX, key_builder=_view_key)
async def build_traceability_view(
    db: AsyncSession,
    ledger: LedgerMirror,
    *,
    batch_id: str,
) -> dict:
    """Return the JSON form of TraceabilityOut for a batch (by internal id)."""
    batch = await db.get(Batch, batch_id)
    if batch is None:
        raise ResourceNotFoundError("Batch", batch_id)

    journey = await load_journey(db, batch_id)
    record, ledger_error = await _read_ledger(ledger, batch.batch_code)

    return TraceabilityOut(
        batch=BatchOut.model_validate(batch),
        journey=[JourneyEventOut.model_validate(e) for e in journey],
        ledger=record,
        ledger_error=ledger_error,
    ).model_dump(mode="json")


async def invalidate_traceability(batch_id: str) -> None:
    await invalidate_cache(f"{CACHE_PREFIX}:{batch_id}")
