"""Ledger gateway client tests (httpx.MockTransport, no network)."""

import asyncio
import json
from decimal import Decimal

import httpx
import pytest

from harvestchain.models.journey_event import LEDGER_PENDING
from harvestchain.services.ledger import (
    DATA_HASH_MAX_LEN,
    LedgerMirror,
    LedgerUnavailableError,
    participant_ref,
)


def _mirror(handler, timeout: float = 5.0) -> LedgerMirror:
    return LedgerMirror(
        base_url="http://gateway.test",
        api_key="k3y",
        timeout=timeout,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.unit
class TestContractCalls:

    async def test_create_record_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"txHash": "0xfeed", "events": ["BatchCreated"]})

        mirror = _mirror(handler)
        receipt = await mirror.create_record(
            batch_id="BATCH-20261001-0A1B2C3D",
            quantity=Decimal("100.500"),
            producer_ref="FARMER_12345678",
            data_hash="Q" * 46,
        )

        assert receipt.tx_ref == "0xfeed"
        assert receipt.events == ["BatchCreated"]
        assert seen["method"] == "POST"
        assert seen["path"] == "/batches"
        assert seen["auth"] == "Bearer k3y"
        assert seen["body"] == {
            "batchId": "BATCH-20261001-0A1B2C3D",
            "quantity": "100.500",
            "farmerId": "FARMER_12345678",
            "dataHash": "Q" * DATA_HASH_MAX_LEN,
        }
        await mirror.aclose()

    async def test_split_and_transfer_paths(self):
        paths = []

        def handler(request: httpx.Request) -> httpx.Response:
            paths.append((request.url.path, json.loads(request.content)))
            return httpx.Response(200, json={"txHash": "0x1"})

        mirror = _mirror(handler)
        await mirror.split_record("B-1", "B-1-abcd", Decimal("4"), "RETAILER_1", "hash")
        await mirror.transfer_record("B-1", "RETAILER_1")

        assert paths[0] == ("/batches/B-1/split", {
            "childId": "B-1-abcd", "quantity": "4", "newHolder": "RETAILER_1", "dataHash": "hash",
        })
        assert paths[1] == ("/batches/B-1/transfer", {"toId": "RETAILER_1"})

    async def test_http_error_becomes_unavailable(self):
        mirror = _mirror(lambda request: httpx.Response(500, json={"error": "reverted"}))

        with pytest.raises(LedgerUnavailableError, match="500"):
            await mirror.transfer_record("B-1", "RETAILER_1")

    async def test_missing_tx_hash(self):
        mirror = _mirror(lambda request: httpx.Response(200, json={"ok": True}))

        with pytest.raises(LedgerUnavailableError, match="transaction hash"):
            await mirror.transfer_record("B-1", "RETAILER_1")

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(LedgerUnavailableError, match="unreachable"):
            await _mirror(handler).read_record("B-1")

    async def test_read_record(self):
        def handler(request):
            assert request.url.path == "/batches/B-1-abcd"
            return httpx.Response(200, json={
                "batchId": "B-1-abcd",
                "parentBatchId": "B-1",
                "quantity": "40",
                "holderId": "DISTRIBUTOR_9",
                "dataHash": "bafy",
                "status": 1,
                "history": [{"action": "Split", "fromId": "FARMER_1", "toId": "DISTRIBUTOR_9", "timestamp": 17}],
            })

        record = await _mirror(handler).read_record("B-1-abcd")

        assert record.parent_batch_id == "B-1"
        assert record.quantity == Decimal("40")
        assert record.holder_ref == "DISTRIBUTOR_9"
        assert record.history == [
            {"action": "Split", "from_ref": "FARMER_1", "to_ref": "DISTRIBUTOR_9", "timestamp": 17},
        ]

    async def test_read_record_bad_shape(self):
        mirror = _mirror(lambda request: httpx.Response(200, json={"batchId": "B-1"}))

        with pytest.raises(LedgerUnavailableError, match="Unexpected"):
            await mirror.read_record("B-1")

    async def test_poll_events(self):
        def handler(request):
            assert request.url.params["fromBlock"] == "12"
            return httpx.Response(200, json={"events": [{"event": "BatchCreated"}], "latestBlock": 15})

        events, latest = await _mirror(handler).poll_events(12)
        assert events == [{"event": "BatchCreated"}]
        assert latest == 15

    async def test_disabled_mirror_refuses_reads(self):
        mirror = LedgerMirror(base_url="")
        assert mirror.mirroring_enabled is False
        with pytest.raises(LedgerUnavailableError, match="disabled"):
            await mirror.read_record("B-1")


@pytest.mark.unit
class TestMirrorCall:

    async def test_success(self):
        mirror = _mirror(lambda request: httpx.Response(200, json={"txHash": "0xabc"}))

        outcome = await mirror.mirror_call("transfer_record", batch_id="B-1", to_ref="X")

        assert outcome.succeeded is True
        assert outcome.tx_ref == "0xabc"
        assert outcome.error is None

    async def test_failure_is_returned_not_raised(self, caplog):
        mirror = _mirror(lambda request: httpx.Response(503))

        outcome = await mirror.mirror_call(
            "transfer_record", context={"order_id": "o-1"}, batch_id="B-1", to_ref="X",
        )

        assert outcome.attempted is True
        assert outcome.succeeded is False
        assert outcome.tx_ref == LEDGER_PENDING
        assert "503" in outcome.error
        assert "o-1" in caplog.text

    async def test_timeout_is_a_failure(self):
        async def slow(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json={"txHash": "0xlate"})

        mirror = _mirror(slow, timeout=0.05)
        outcome = await mirror.mirror_call("transfer_record", batch_id="B-1", to_ref="X")

        assert outcome.succeeded is False
        assert outcome.tx_ref == LEDGER_PENDING

    async def test_disabled_skips_call(self):
        calls = []
        mirror = LedgerMirror(base_url="", transport=httpx.MockTransport(lambda r: calls.append(r)))

        outcome = await mirror.mirror_call("create_record", batch_id="B-1")

        assert outcome.attempted is False
        assert outcome.tx_ref == LEDGER_PENDING
        assert calls == []


def test_participant_ref():
    assert participant_ref("farmer", "3f2c9a8e-1b7d-4c55-9e0a-71d2c4b5a6f0") == "FARMER_c4b5a6f0"
