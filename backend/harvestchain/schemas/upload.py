from pydantic import BaseModel


class ProofUploadOut(BaseModel):
    """Stored proof document; pass ``url`` in the listing request."""
    ref: str
    url: str
    file_name: str
    size: int
    content_type: str


class QualityProofOut(BaseModel):
    batch_id: str
    proof_type: str
    files: list[ProofUploadOut]


class StoredRefOut(BaseModel):
    ref: str
    url: str
