"""Background ledger listener — logs events emitted by the ledger mirror.

Diagnostic only: it polls the gateway's event feed and logs BatchCreated,
BatchTransferred and BatchSplit events so operators can see the mirror
catching up.  Nothing reads what it logs, and a failed poll is logged and
retried on the next tick.

Started from the FastAPI lifespan (see ``main.lifespan``) when
``LEDGER_LISTENER_ENABLED=true`` and a gateway URL is configured.
"""

import asyncio
import logging

from harvestchain.services.ledger import LedgerMirror, LedgerUnavailableError

logger = logging.getLogger("harvestchain.ledger_listener")

KNOWN_EVENTS = {"BatchCreated", "BatchTransferred", "BatchSplit"}


def log_event(event: dict) -> None:
    name = event.get("event") or event.get("name")
    args = event.get("args") or {}
    if name not in KNOWN_EVENTS:
        logger.debug("Ignoring ledger event %s", name)
        return
    logger.info(
        "Ledger event %s block=%s tx=%s batch=%s",
        name, event.get("blockNumber"), event.get("transactionHash"),
        args.get("batchId") or args.get("parentId"),
    )


async def poll_once(ledger: LedgerMirror, from_block: int) -> int:
    """Fetch and log one page of events; return the next block to poll from."""
    events, latest = await ledger.poll_events(from_block)
    for event in events:
        log_event(event)
    return max(from_block, latest + 1) if events else max(from_block, latest)


async def _listener_loop(ledger: LedgerMirror, interval: float) -> None:
    next_block = 0
    while True:
        try:
            next_block = await poll_once(ledger, next_block)
        except LedgerUnavailableError as exc:
            logger.warning("Ledger event poll failed: %s", exc)
        except Exception:
            logger.exception("Unhandled error in ledger listener")

        await asyncio.sleep(interval)


def start_listener(ledger: LedgerMirror, enabled: bool, interval: float) -> asyncio.Task | None:
    if not enabled:
        return None
    if not ledger.mirroring_enabled:
        logger.info("Ledger listener not started: no ledger gateway configured")
        return None
    logger.info("Ledger listener started (every %.0fs)", interval)
    return asyncio.create_task(_listener_loop(ledger, interval))


async def stop_listener(task: asyncio.Task | None) -> None:
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    logger.info("Ledger listener stopped")
