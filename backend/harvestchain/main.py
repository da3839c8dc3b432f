from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from harvestchain.config import settings
from harvestchain.logging_config import setup_logging
from harvestchain.middleware.exceptions import register_exception_handlers
from harvestchain.routers import health, listings, orders, traceability, uploads
from harvestchain.services.ledger import LedgerMirror
from harvestchain.services.ledger_listener import start_listener, stop_listener
from harvestchain.services.proof_storage import ProofStorage
from harvestchain.utils.cache import close_redis


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the external collaborators once and close them on shutdown."""
    setup_logging(settings.log_level)

    app.state.ledger_mirror = LedgerMirror.from_settings(settings)
    app.state.proof_storage = ProofStorage.from_settings(settings)
    listener = start_listener(
        app.state.ledger_mirror,
        enabled=settings.ledger_listener_enabled,
        interval=settings.ledger_listener_interval_seconds,
    )
    try:
        yield
    finally:
        await stop_listener(listener)
        await app.state.ledger_mirror.aclose()
        await app.state.proof_storage.aclose()
        await close_redis()


app = FastAPI(
    title="HarvestChain",
    description="Farm-to-consumer produce marketplace with batch traceability",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware ───────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
app.include_router(health.router)
app.include_router(listings.router, prefix="/api/listings", tags=["listings"])
app.include_router(orders.router, prefix="/api/orders", tags=["orders"])
app.include_router(traceability.router, prefix="/api/traceability", tags=["traceability"])
app.include_router(uploads.router, prefix="/api/uploads", tags=["uploads"])
