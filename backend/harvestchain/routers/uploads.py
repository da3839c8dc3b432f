"""Upload router — proof documents and crop images.

Endpoints:
    POST /api/uploads/proof            Store one JPEG/PNG/PDF, return its reference and URL
    POST /api/uploads/proofs           Store up to 10 files in one request
    POST /api/uploads/quality-proof    Store up to 5 files tagged with a batch and proof type
    GET  /api/uploads/{ref}            Public URL of a stored reference
"""

import logging
import os

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from harvestchain.auth.deps import require_permission
from harvestchain.schemas.auth import Principal
from harvestchain.schemas.upload import ProofUploadOut, QualityProofOut, StoredRefOut
from harvestchain.services.proof_storage import (
    ProofStorage,
    StorageUnavailableError,
    get_proof_storage,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_UPLOAD_BYTES = 10 * 1024 * 1024
MAX_FILES_PER_REQUEST = 10
MAX_QUALITY_PROOF_FILES = 5
ALLOWED_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".pdf": "application/pdf",
}
TAG_PATTERN = r"^[A-Za-z0-9_-]+$"


async def _read_checked(file: UploadFile) -> tuple[str, str, bytes]:
    """Validate type and size of one upload; returns (name, content_type, content)."""
    name = file.filename or "upload"
    extension = os.path.splitext(name)[1].lower()
    expected_type = ALLOWED_TYPES.get(extension)
    if expected_type is None or (file.content_type and file.content_type != expected_type):
        raise HTTPException(
            status_code=status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
            detail=f"{name}: only JPEG, PNG and PDF files are allowed",
        )

    # One byte past the limit is enough to know it is too large
    content = await file.read(MAX_UPLOAD_BYTES + 1)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{name}: uploaded file is empty")
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"{name}: file exceeds the 10 MB limit",
        )
    return name, expected_type, content


def _check_count(files: list[UploadFile], limit: int) -> None:
    if len(files) > limit:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {limit} files per request",
        )


async def _store_all(
    storage: ProofStorage,
    principal: Principal,
    checked: list[tuple[str, str, bytes]],
) -> list[ProofUploadOut]:
    out = []
    try:
        for name, content_type, content in checked:
            stored = await storage.store(content, name, content_type=content_type)
            out.append(ProofUploadOut(
                ref=stored.ref,
                url=stored.url,
                file_name=name,
                size=len(content),
                content_type=content_type,
            ))
    except StorageUnavailableError as exc:
        # Nothing to fall back to for a raw upload; the client retries later
        logger.warning("Proof upload by %s failed after %d file(s): %s", principal.id, len(out), exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Proof storage is unavailable, try again later",
        )
    return out


# ── Single ───────────────────────────────────────────────────

@router.post("/proof", response_model=ProofUploadOut, status_code=status.HTTP_201_CREATED)
async def upload_proof(
    file: UploadFile = File(...),
    principal: Principal = Depends(require_permission("proof.upload")),
    storage: ProofStorage = Depends(get_proof_storage),
):
    checked = await _read_checked(file)
    return (await _store_all(storage, principal, [checked]))[0]


# ── Multiple ─────────────────────────────────────────────────

@router.post("/proofs", response_model=list[ProofUploadOut], status_code=status.HTTP_201_CREATED)
async def upload_proofs(
    files: list[UploadFile] = File(...),
    principal: Principal = Depends(require_permission("proof.upload")),
    storage: ProofStorage = Depends(get_proof_storage),
):
    """Store several files; all are validated before any is stored."""
    _check_count(files, MAX_FILES_PER_REQUEST)
    checked = [await _read_checked(f) for f in files]
    stored = await _store_all(storage, principal, checked)
    logger.info("%s stored %d proof file(s)", principal.id, len(stored))
    return stored


@router.post("/quality-proof", response_model=QualityProofOut, status_code=status.HTTP_201_CREATED)
async def upload_quality_proof(
    batch_id: str = Form(..., min_length=1, max_length=64, pattern=TAG_PATTERN),
    proof_type: str = Form(..., min_length=1, max_length=50, pattern=TAG_PATTERN),
    files: list[UploadFile] = File(...),
    principal: Principal = Depends(require_permission("proof.upload")),
    storage: ProofStorage = Depends(get_proof_storage),
):
    """Store quality evidence for a batch.

    Each file is stored as ``<proof_type>_<batch_id>_<file name>`` so the
    stored object names say what they prove.
    """
    _check_count(files, MAX_QUALITY_PROOF_FILES)
    checked = [
        (f"{proof_type}_{batch_id}_{name}", content_type, content)
        for name, content_type, content in [await _read_checked(f) for f in files]
    ]
    stored = await _store_all(storage, principal, checked)
    logger.info(
        "%s stored %d %s file(s) for batch %s", principal.id, len(stored), proof_type, batch_id,
    )
    return QualityProofOut(batch_id=batch_id, proof_type=proof_type, files=stored)


# ── Resolve ──────────────────────────────────────────────────

@router.get("/{ref}", response_model=StoredRefOut)
async def resolve_ref(
    ref: str,
    _principal: Principal = Depends(require_permission("listing.read")),
    storage: ProofStorage = Depends(get_proof_storage),
):
    if not ref.isalnum():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed storage reference")
    return StoredRefOut(ref=ref, url=storage.resolve(ref))
