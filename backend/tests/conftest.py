"""Pytest configuration and fixtures for HarvestChain tests.

Every test gets its own SQLite file database (aiosqlite), so sessions on
separate connections behave like separate requests.  The ledger mirror and
proof storage are replaced by in-memory fakes injected through
``app.dependency_overrides``.
"""

import asyncio
import os
import tempfile
import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

# Settings are read at import time; point them at throwaway services first.
_BOOTSTRAP_DIR = tempfile.mkdtemp(prefix="harvestchain-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_BOOTSTRAP_DIR}/bootstrap.db"
os.environ["CACHE_ENABLED"] = "false"
os.environ["LEDGER_GATEWAY_URL"] = ""
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from harvestchain.auth.jwt import create_access_token
from harvestchain.database import Base, get_db
from harvestchain.main import app
from harvestchain.schemas.auth import Principal, Role
from harvestchain.schemas.batch import CropListingRequest
from harvestchain.services.intake import create_batch_and_listing
from harvestchain.services.ledger import (
    LedgerMirror,
    LedgerReceipt,
    LedgerRecord,
    LedgerUnavailableError,
    get_ledger_mirror,
)
from harvestchain.services.orders import create_order, set_status
from harvestchain.services.proof_storage import (
    ProofStorage,
    StorageUnavailableError,
    StoredObject,
    canonical_json,
    get_proof_storage,
)


# ── Collaborator fakes ───────────────────────────────────────────

class FakeLedgerMirror(LedgerMirror):
    """In-memory ledger gateway.

    Overrides the raw gateway calls only, so ``mirror_call`` (timeout,
    failure handling, pending refs) runs for real.

    Knobs:
        fail_on:  operation names that raise LedgerUnavailableError
        delay:    seconds every call sleeps before answering
        gate:     (predicate, entered, release): a call matching
                  predicate(operation, kwargs) sets ``entered`` and
                  waits for ``release`` before continuing
    """

    def __init__(self, enabled: bool = True, timeout: float = 5.0):
        super().__init__(base_url="http://ledger.test" if enabled else "", timeout=timeout)
        self.calls: list[tuple[str, dict]] = []
        self.records: dict[str, LedgerRecord] = {}
        self.fail_on: set[str] = set()
        self.delay: float = 0
        self.gate = None
        self._tx_counter = 0

    def _next_tx(self) -> str:
        self._tx_counter += 1
        return f"0x{self._tx_counter:064x}"

    async def _enter(self, operation: str, kwargs: dict) -> None:
        self.calls.append((operation, kwargs))
        if self.gate is not None:
            predicate, entered, release = self.gate
            if predicate(operation, kwargs):
                entered.set()
                await release.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if operation in self.fail_on:
            raise LedgerUnavailableError(f"{operation} refused by fake gateway")

    def operations(self) -> list[str]:
        return [operation for operation, _ in self.calls]

    async def create_record(self, batch_id, quantity, producer_ref, data_hash):
        await self._enter("create_record", {
            "batch_id": batch_id, "quantity": quantity,
            "producer_ref": producer_ref, "data_hash": data_hash,
        })
        self.records[batch_id] = LedgerRecord(
            batch_id=batch_id, parent_batch_id=None, quantity=quantity,
            holder_ref=producer_ref, data_hash=data_hash, status=0,
            history=[{"action": "Created", "from_ref": None, "to_ref": producer_ref, "timestamp": 1}],
        )
        return LedgerReceipt(tx_ref=self._next_tx(), events=["BatchCreated"])

    async def transfer_record(self, batch_id, to_ref):
        await self._enter("transfer_record", {"batch_id": batch_id, "to_ref": to_ref})
        if batch_id in self.records:
            self.records[batch_id].holder_ref = to_ref
        return LedgerReceipt(tx_ref=self._next_tx(), events=["BatchTransferred"])

    async def split_record(self, parent_batch_id, child_batch_id, quantity, to_ref, data_hash):
        await self._enter("split_record", {
            "parent_batch_id": parent_batch_id, "child_batch_id": child_batch_id,
            "quantity": quantity, "to_ref": to_ref, "data_hash": data_hash,
        })
        self.records[child_batch_id] = LedgerRecord(
            batch_id=child_batch_id, parent_batch_id=parent_batch_id, quantity=quantity,
            holder_ref=to_ref, data_hash=data_hash, status=0,
        )
        return LedgerReceipt(tx_ref=self._next_tx(), events=["BatchSplit"])

    async def read_record(self, batch_id):
        if not self.mirroring_enabled:
            raise LedgerUnavailableError("Ledger mirroring is disabled")
        await self._enter("read_record", {"batch_id": batch_id})
        if batch_id not in self.records:
            raise LedgerUnavailableError(f"Ledger gateway returned 404 for GET /batches/{batch_id}")
        return self.records[batch_id]


class FakeProofStorage(ProofStorage):
    """In-memory content-addressed store; set ``available = False`` to simulate an outage."""

    def __init__(self, available: bool = True):
        super().__init__(api_url="http://storage.test", api_jwt="test-jwt", gateway="ipfs.test")
        self.available = available
        self.objects: dict[str, bytes] = {}
        self.names: dict[str, str] = {}

    async def store(self, content, name, content_type="application/octet-stream"):
        if not self.available:
            raise StorageUnavailableError("Proof storage upload failed: connection refused")
        ref = "bafy" + uuid.uuid5(uuid.NAMESPACE_URL, content.hex()).hex
        self.objects[ref] = content
        self.names[ref] = name
        return StoredObject(ref=ref, url=self.resolve(ref))

    async def store_json(self, document, name):
        return await self.store(canonical_json(document), name, content_type="application/json")


# ── Database ─────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'harvestchain.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ── Collaborators ────────────────────────────────────────────────

@pytest.fixture
def ledger() -> FakeLedgerMirror:
    return FakeLedgerMirror()


@pytest.fixture
def disabled_ledger() -> FakeLedgerMirror:
    """Ledger with no gateway configured: mirroring is skipped."""
    return FakeLedgerMirror(enabled=False)


@pytest.fixture
def storage() -> FakeProofStorage:
    return FakeProofStorage()


# ── Principals / tokens ──────────────────────────────────────────

def _principal(role: Role, name: str) -> Principal:
    return Principal(id=str(uuid.uuid4()), role=role, display_name=name, wallet_ref=f"0x{name}")


@pytest.fixture
def farmer() -> Principal:
    return _principal(Role.FARMER, "ravi")


@pytest.fixture
def other_farmer() -> Principal:
    return _principal(Role.FARMER, "meena")


@pytest.fixture
def distributor() -> Principal:
    return _principal(Role.DISTRIBUTOR, "agrotrade")


@pytest.fixture
def retailer() -> Principal:
    return _principal(Role.RETAILER, "freshmart")


@pytest.fixture
def consumer() -> Principal:
    return _principal(Role.CONSUMER, "asha")


def auth_headers(principal: Principal) -> dict:
    token = create_access_token(
        user_id=principal.id,
        role=principal.role.value,
        name=principal.display_name,
        wallet=principal.wallet_ref,
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    """Build bearer headers for a principal: ``headers_for(farmer)``."""
    return auth_headers


# ── HTTP client ──────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(session_factory, ledger, storage) -> AsyncGenerator[AsyncClient, None]:
    """ASGI client with the database and collaborators overridden."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ledger_mirror] = lambda: ledger
    app.dependency_overrides[get_proof_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Domain helpers ───────────────────────────────────────────────

def crop_request(quantity="100", price="10", **overrides) -> CropListingRequest:
    data = {
        "crop_name": "Tomato",
        "quantity": quantity,
        "price_per_kg": price,
        "harvest_date": date(2026, 10, 1),
        "origin_location": "Nashik, Maharashtra",
        "fertilizers": ["Vermicompost"],
        "pesticides": [],
    }
    data.update(overrides)
    return CropListingRequest(**data)


@pytest.fixture
def make_crop_request():
    return crop_request


@pytest.fixture
def list_harvest(db_session, storage, ledger):
    """Create (and commit) a batch with its root listing.

    Usage: ``result = await list_harvest(farmer, quantity="100", price="10")``
    """
    async def _list(producer: Principal, quantity="100", price="10", **overrides) -> dict:
        return await create_batch_and_listing(
            db_session, producer, crop_request(quantity, price, **overrides), storage, ledger,
        )

    return _list


@pytest.fixture
def approved_order(db_session):
    """Create, approve and commit an order: ``await approved_order(listing, buyer, "40")``."""
    async def _order(listing, buyer: Principal, quantity):
        order = await create_order(db_session, listing.id, buyer, Decimal(str(quantity)))
        seller = Principal(id=listing.seller_id, role=Role.FARMER)
        order = await set_status(db_session, order.id, seller, "approved")
        await db_session.commit()
        return order

    return _order


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "api: HTTP-level tests through the ASGI app")
    config.addinivalue_line("markers", "integration: Multi-step workflow tests")
    config.addinivalue_line("markers", "concurrency: Interleaved completion tests")
