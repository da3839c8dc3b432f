"""Harvest intake: a farmer lists a fresh batch for sale.

Handles the creation of a new Batch and its root Listing, including:
  - Building the immutable harvest metadata document
  - Storing it in proof storage (or fingerprinting it when storage is down)
  - Mirroring the new record onto the ledger (best-effort)
  - Seeding the batch journey with the harvest event
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from harvestchain.middleware.exceptions import AuthorizationError
from harvestchain.schemas.auth import Principal, Role
from harvestchain.schemas.batch import CropListingRequest
from harvestchain.services.ledger import LedgerMirror, participant_ref
from harvestchain.services.listings import create_listing
from harvestchain.services.proof_storage import ProofStorage, StorageUnavailableError, fingerprint
from harvestchain.services.provenance import BatchMetadata, create_batch, generate_batch_code

logger = logging.getLogger(__name__)


def build_metadata_document(batch_code: str, producer: Principal, body: CropListingRequest) -> dict:
    return {
        "batchId": batch_code,
        "cropName": body.crop_name,
        "quantity": str(body.quantity),
        "harvestDate": body.harvest_date.isoformat(),
        "originLocation": body.origin_location,
        "fertilizers": list(body.fertilizers),
        "pesticides": list(body.pesticides),
        "proofs": {
            "image": body.image_url,
            "proofImage": body.proof_image_url,
            "qualityCertificate": body.quality_certificate_url,
            "fertilizerProof": body.fertilizer_proof_url,
            "pesticideProof": body.pesticide_proof_url,
        },
        "producer": {
            "id": producer.id,
            "name": producer.display_name,
            "wallet": producer.wallet_ref,
        },
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


async def create_batch_and_listing(
    db: AsyncSession,
    producer: Principal,
    body: CropListingRequest,
    storage: ProofStorage,
    ledger: LedgerMirror,
) -> dict:
    """Create a batch plus its root listing and commit them.

    Returns:
        {
            "batch": Batch,
            "listing": Listing,
            "ledger_outcome": LedgerOutcome,
            "metadata_ref": str,
            "metadata_ref_kind": "storage" | "fingerprint",
        }

    Raises:
        AuthorizationError if the producer is not a farmer.
        DomainValidationError if required harvest metadata is missing.
    """
    if producer.role != Role.FARMER:
        raise AuthorizationError("Only farmers can list a new harvest")

    batch_code = generate_batch_code()
    document = build_metadata_document(batch_code, producer, body)

    # ── Metadata document → proof storage (fallback: fingerprint) ──
    try:
        stored = await storage.store_json(document, name=f"{batch_code}.json")
        metadata_ref, metadata_ref_kind = stored.ref, "storage"
    except StorageUnavailableError as exc:
        metadata_ref, metadata_ref_kind = fingerprint(document), "fingerprint"
        logger.warning(
            "Proof storage unavailable for %s, using fingerprint %s: %s",
            batch_code, metadata_ref, exc,
        )

    # ── Ledger mirror (optional, never blocks intake) ─────────
    outcome = await ledger.mirror_call(
        "create_record",
        context={"batch_code": batch_code, "producer_id": producer.id},
        batch_id=batch_code,
        quantity=body.quantity,
        producer_ref=participant_ref(producer.role.value, producer.id),
        data_hash=metadata_ref,
    )

    # ── Batch + root listing ──────────────────────────────────
    metadata = BatchMetadata(
        crop_name=body.crop_name,
        quantity=body.quantity,
        harvest_date=body.harvest_date,
        origin_location=body.origin_location,
        fertilizers=body.fertilizers,
        pesticides=body.pesticides,
        image_url=body.image_url,
        proof_image_url=body.proof_image_url,
        quality_certificate_url=body.quality_certificate_url,
        fertilizer_proof_url=body.fertilizer_proof_url,
        pesticide_proof_url=body.pesticide_proof_url,
        metadata_ref=metadata_ref,
        metadata_ref_kind=metadata_ref_kind,
    )
    batch = await create_batch(
        db, metadata, producer, ledger_tx_ref=outcome.tx_ref, batch_code=batch_code,
    )
    listing = await create_listing(
        db,
        batch_id=batch.id,
        seller_id=producer.id,
        parent_id=None,
        quantity=body.quantity,
        price=body.price_per_kg,
        active=True,
        ledger_record_id=batch_code,
    )
    await db.commit()

    logger.info(
        "Batch %s listed by %s: %s kg of %s (listing %s, ledger %s)",
        batch_code, producer.id, body.quantity, body.crop_name, listing.id, outcome.tx_ref,
    )
    return {
        "batch": batch,
        "listing": listing,
        "ledger_outcome": outcome,
        "metadata_ref": metadata_ref,
        "metadata_ref_kind": metadata_ref_kind,
    }
