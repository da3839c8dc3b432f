"""Provenance store tests: batch creation and the append-only journey."""

import re
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.middleware.exceptions import DomainValidationError, ResourceNotFoundError
from harvestchain.models.journey_event import LEDGER_PENDING
from harvestchain.services.provenance import (
    HARVEST_ACTION,
    BatchMetadata,
    append_journey_event,
    create_batch,
    get_batch,
    get_journey,
    load_journey,
)


def _metadata(**overrides) -> BatchMetadata:
    data = {
        "crop_name": "Onion",
        "quantity": Decimal("250"),
        "harvest_date": date(2026, 9, 12),
        "origin_location": "Lasalgaon, Maharashtra",
        "fertilizers": ["Urea"],
    }
    data.update(overrides)
    return BatchMetadata(**data)


@pytest.mark.unit
class TestCreateBatch:

    async def test_seeds_journey_with_harvest_event(self, db_session: AsyncSession, farmer):
        batch = await create_batch(db_session, _metadata(), farmer, ledger_tx_ref="0xabc")

        journey = await load_journey(db_session, batch.id)
        assert len(journey) == 1
        event = journey[0]
        assert event.sequence == 1
        assert event.action == HARVEST_ACTION
        assert event.handler_id == farmer.id
        assert event.role == "farmer"
        assert event.quantity == Decimal("250")
        assert event.ledger_tx_ref == "0xabc"

    async def test_batch_code_format_and_uniqueness(self, db_session: AsyncSession, farmer):
        first = await create_batch(db_session, _metadata(), farmer)
        second = await create_batch(db_session, _metadata(), farmer)

        assert re.fullmatch(r"BATCH-\d{8}-[0-9A-F]{8}", first.batch_code)
        assert first.batch_code != second.batch_code

    async def test_missing_ledger_ref_is_pending(self, db_session: AsyncSession, farmer):
        batch = await create_batch(db_session, _metadata(), farmer)
        journey = await load_journey(db_session, batch.id)
        assert journey[0].ledger_tx_ref == LEDGER_PENDING

    @pytest.mark.parametrize("field, value", [
        ("crop_name", ""),
        ("origin_location", None),
        ("harvest_date", None),
        ("quantity", None),
        ("quantity", Decimal("0")),
    ])
    async def test_rejects_missing_metadata(self, db_session: AsyncSession, farmer, field, value):
        with pytest.raises(DomainValidationError) as exc_info:
            await create_batch(db_session, _metadata(**{field: value}), farmer)
        assert field in exc_info.value.message

    async def test_get_batch_by_id_or_code(self, db_session: AsyncSession, farmer):
        batch = await create_batch(db_session, _metadata(), farmer)

        assert (await get_batch(db_session, batch.id)).id == batch.id
        assert (await get_batch(db_session, batch.batch_code)).id == batch.id
        with pytest.raises(ResourceNotFoundError):
            await get_batch(db_session, "BATCH-00000000-DEADBEEF")


@pytest.mark.unit
class TestJourney:

    async def test_append_assigns_next_sequence(self, db_session: AsyncSession, farmer, distributor):
        batch = await create_batch(db_session, _metadata(), farmer)

        event = await append_journey_event(
            db_session, batch.id, distributor.id, "distributor", "Bought",
            ledger_tx_ref="0x1", quantity=Decimal("50"),
        )
        assert event.sequence == 2

        event = await append_journey_event(
            db_session, batch.id, distributor.id, "distributor", "Bought",
        )
        assert event.sequence == 3
        assert event.ledger_tx_ref == LEDGER_PENDING

    async def test_append_to_unknown_batch(self, db_session: AsyncSession, distributor):
        with pytest.raises(ResourceNotFoundError):
            await append_journey_event(
                db_session, "no-such-batch", distributor.id, "distributor", "Bought",
            )

    async def test_earlier_snapshot_is_prefix_of_later(self, db_session: AsyncSession, farmer, retailer):
        """Appending never rewrites what was already recorded."""
        batch = await create_batch(db_session, _metadata(), farmer)

        def snapshot(events):
            return [(e.sequence, e.handler_id, e.action, e.ledger_tx_ref) for e in events]

        before = snapshot(await load_journey(db_session, batch.id))
        await append_journey_event(db_session, batch.id, retailer.id, "retailer", "Bought")
        await append_journey_event(db_session, batch.id, retailer.id, "retailer", "Bought")
        after = snapshot(await load_journey(db_session, batch.id))

        assert len(after) == len(before) + 2
        assert after[: len(before)] == before

    async def test_get_journey_is_restartable(self, db_session: AsyncSession, farmer, retailer):
        batch = await create_batch(db_session, _metadata(), farmer)
        await append_journey_event(db_session, batch.id, retailer.id, "retailer", "Bought")

        first = [e.id async for e in get_journey(db_session, batch.id)]
        second = [e.id async for e in get_journey(db_session, batch.id)]
        assert first == second
        assert len(first) == 2

    async def test_journeys_are_per_batch(self, db_session: AsyncSession, farmer, retailer):
        a = await create_batch(db_session, _metadata(), farmer)
        b = await create_batch(db_session, _metadata(crop_name="Garlic"), farmer)
        await append_journey_event(db_session, a.id, retailer.id, "retailer", "Bought")

        assert [e.sequence for e in await load_journey(db_session, a.id)] == [1, 2]
        assert [e.sequence for e in await load_journey(db_session, b.id)] == [1]
