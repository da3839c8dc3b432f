"""Ledger mirror client — best-effort copy of provenance onto an external ledger.

The mirror is an append-only ledger (a traceability smart contract) reached
through an HTTP gateway that signs and submits the contract calls:

    POST /batches                       createBatch(batchId, quantity, farmerId, dataHash)
    POST /batches/{batchId}/transfer    transferBatch(batchId, toId)
    POST /batches/{batchId}/split       splitBatch(parentId, childId, qty, newHolder, dataHash)
    GET  /batches/{batchId}             getBatch(batchId)
    GET  /events?fromBlock=N            emitted BatchCreated / BatchTransferred / BatchSplit

Every call can fail independently of our own database.  The raw methods
raise ``LedgerUnavailableError``; the services never call them directly but
go through ``mirror_call()``, which bounds the call with a timeout, logs the
failure with enough context to reconcile by hand, and hands back a
``LedgerOutcome`` whose ``tx_ref`` is ``"pending"`` when nothing was
recorded.  The off-chain journey stays authoritative.

One ``LedgerMirror`` is built at startup (see ``main.lifespan``) and
injected into routes with ``get_ledger_mirror``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx
from fastapi import Request

from harvestchain.config import Settings
from harvestchain.models.journey_event import LEDGER_PENDING

logger = logging.getLogger("harvestchain.ledger")

# The contract stores data hashes as bytes32 strings
DATA_HASH_MAX_LEN = 31


class LedgerUnavailableError(Exception):
    """The ledger gateway could not be reached, timed out, or refused the call."""


# ── Data structures ────────────────────────────────────────────


@dataclass
class LedgerReceipt:
    tx_ref: str
    events: list[str] = field(default_factory=list)


@dataclass
class LedgerRecord:
    batch_id: str
    parent_batch_id: str | None
    quantity: Decimal
    holder_ref: str
    data_hash: str | None
    status: int
    history: list[dict] = field(default_factory=list)


@dataclass
class LedgerOutcome:
    """Result of one best-effort mirror call."""
    operation: str
    attempted: bool
    succeeded: bool
    tx_ref: str = LEDGER_PENDING
    error: str | None = None

    def as_dict(self) -> dict:
        return {
            "operation": self.operation,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "tx_ref": self.tx_ref,
            "error": self.error,
        }


def participant_ref(role: str, user_id: str) -> str:
    """On-ledger participant id: ``FARMER_1a2b3c4d`` (role + last 8 chars of the user id)."""
    return f"{role.upper()}_{user_id[-8:]}"


def clip_data_hash(data_hash: str | None) -> str:
    return (data_hash or "")[:DATA_HASH_MAX_LEN]


# ── Client ─────────────────────────────────────────────────────


class LedgerMirror:
    """Async client for the ledger gateway.

    ``mirroring_enabled`` is the single capability flag: with no gateway URL
    configured, writes are skipped (recorded as ``"pending"``) and reads
    raise ``LedgerUnavailableError``.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerMirror":
        return cls(
            base_url=settings.ledger_gateway_url,
            api_key=settings.ledger_api_key,
            timeout=settings.ledger_timeout_seconds,
        )

    @property
    def mirroring_enabled(self) -> bool:
        return bool(self.base_url)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
    ) -> dict[str, Any]:
        if not self.mirroring_enabled:
            raise LedgerUnavailableError("Ledger mirroring is disabled")
        try:
            response = await self._get_client().request(method, path, json=json, params=params)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise LedgerUnavailableError(
                f"Ledger gateway returned {exc.response.status_code} for {method} {path}"
            ) from exc
        except httpx.HTTPError as exc:
            raise LedgerUnavailableError(f"Ledger gateway unreachable: {exc}") from exc
        except ValueError as exc:
            raise LedgerUnavailableError("Ledger gateway sent a malformed response") from exc

    @staticmethod
    def _receipt(data: dict[str, Any]) -> LedgerReceipt:
        tx_ref = data.get("txHash")
        if not tx_ref:
            raise LedgerUnavailableError("Ledger gateway response has no transaction hash")
        return LedgerReceipt(tx_ref=tx_ref, events=list(data.get("events") or []))

    # ── Contract calls ──────────────────────────────────────

    async def create_record(
        self,
        batch_id: str,
        quantity: Decimal,
        producer_ref: str,
        data_hash: str,
    ) -> LedgerReceipt:
        data = await self._request("POST", "/batches", json={
            "batchId": batch_id,
            "quantity": str(quantity),
            "farmerId": producer_ref,
            "dataHash": clip_data_hash(data_hash),
        })
        return self._receipt(data)

    async def transfer_record(self, batch_id: str, to_ref: str) -> LedgerReceipt:
        data = await self._request("POST", f"/batches/{batch_id}/transfer", json={
            "toId": to_ref,
        })
        return self._receipt(data)

    async def split_record(
        self,
        parent_batch_id: str,
        child_batch_id: str,
        quantity: Decimal,
        to_ref: str,
        data_hash: str,
    ) -> LedgerReceipt:
        data = await self._request("POST", f"/batches/{parent_batch_id}/split", json={
            "childId": child_batch_id,
            "quantity": str(quantity),
            "newHolder": to_ref,
            "dataHash": clip_data_hash(data_hash),
        })
        return self._receipt(data)

    async def read_record(self, batch_id: str) -> LedgerRecord:
        data = await self._request("GET", f"/batches/{batch_id}")
        try:
            return LedgerRecord(
                batch_id=data["batchId"],
                parent_batch_id=data.get("parentBatchId") or None,
                quantity=Decimal(str(data["quantity"])),
                holder_ref=data["holderId"],
                data_hash=data.get("dataHash"),
                status=int(data.get("status", 0)),
                history=[
                    {
                        "action": h.get("action"),
                        "from_ref": h.get("fromId"),
                        "to_ref": h.get("toId"),
                        "timestamp": h.get("timestamp"),
                    }
                    for h in data.get("history") or []
                ],
            )
        except (KeyError, TypeError, ArithmeticError) as exc:
            raise LedgerUnavailableError(f"Unexpected ledger record shape for {batch_id}") from exc

    async def poll_events(self, from_block: int = 0) -> tuple[list[dict], int]:
        """Return (events, latest_block) emitted at or after ``from_block``."""
        data = await self._request("GET", "/events", params={"fromBlock": from_block})
        return list(data.get("events") or []), int(data.get("latestBlock", from_block))

    # ── Best-effort wrapper used by the services ────────────

    async def mirror_call(
        self,
        operation: str,
        *,
        context: dict | None = None,
        **kwargs,
    ) -> LedgerOutcome:
        """Run one write call; never raises.

        ``operation`` names the method (create_record, transfer_record,
        split_record).  A timeout is treated exactly like a failure.
        """
        context = context or {}
        if not self.mirroring_enabled:
            logger.info("Ledger mirroring disabled, skipping %s %s", operation, context)
            return LedgerOutcome(operation=operation, attempted=False, succeeded=False)

        call = getattr(self, operation)
        try:
            receipt = await asyncio.wait_for(call(**kwargs), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Ledger %s timed out after %.1fs, recorded as pending (%s, args=%s)",
                operation, self.timeout, context, kwargs,
            )
            return LedgerOutcome(
                operation=operation, attempted=True, succeeded=False,
                error=f"timed out after {self.timeout:.1f}s",
            )
        except LedgerUnavailableError as exc:
            logger.warning(
                "Ledger %s failed, recorded as pending (%s, args=%s): %s",
                operation, context, kwargs, exc,
            )
            return LedgerOutcome(
                operation=operation, attempted=True, succeeded=False, error=str(exc),
            )

        logger.info("Ledger %s recorded tx %s (%s)", operation, receipt.tx_ref, context)
        return LedgerOutcome(
            operation=operation, attempted=True, succeeded=True, tx_ref=receipt.tx_ref,
        )


# ── FastAPI dependency ─────────────────────────────────────────


def get_ledger_mirror(request: Request) -> LedgerMirror:
    """Return the process-wide LedgerMirror built in the lifespan."""
    return request.app.state.ledger_mirror
