"""Traceability router — the public face of a batch.

Endpoints (no token required, these back the QR code on the produce):
    GET /api/traceability/{batch_id}     Batch, journey and ledger record
    GET /api/traceability/{batch_id}/qr  SVG QR code of the public page

``batch_id`` may be the internal id or the public batch code.
"""

import io

import segno
from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.database import get_db
from harvestchain.schemas.batch import TraceabilityOut
from harvestchain.services.ledger import LedgerMirror, get_ledger_mirror
from harvestchain.services.provenance import get_batch
from harvestchain.services.traceability import build_traceability_view, traceability_url

router = APIRouter()


@router.get("/{batch_id}", response_model=TraceabilityOut)
async def get_traceability(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
    ledger: LedgerMirror = Depends(get_ledger_mirror),
):
    """Local journey plus the ledger record.

    When the ledger mirror cannot be read the response still carries the
    local section, with ``ledger`` null and ``ledger_error`` set.
    """
    batch = await get_batch(db, batch_id)
    return await build_traceability_view(db, ledger, batch_id=batch.id)


@router.get("/{batch_id}/qr")
async def get_traceability_qr(
    batch_id: str,
    db: AsyncSession = Depends(get_db),
):
    """SVG QR code pointing at the batch's public traceability page."""
    batch = await get_batch(db, batch_id)

    qr = segno.make(traceability_url(batch.batch_code))
    buf = io.BytesIO()
    qr.save(buf, kind="svg", scale=4, dark="#15803d")
    return Response(content=buf.getvalue(), media_type="image/svg+xml")
