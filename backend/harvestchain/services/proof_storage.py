"""Proof storage client — content-addressed storage for proof documents.

Backed by a Pinata-style pinning API:

    POST {api}/pinning/pinFileToIPFS   multipart upload → {"IpfsHash": "<cid>"}
    https://{gateway}/ipfs/<cid>       public URL of a stored object

Harvest metadata documents, crop images and quality/fertilizer/pesticide
receipts are stored here; the batch only keeps the returned reference
strings.  When storage is unavailable, batch intake falls back to a local
``fingerprint()`` of the metadata document instead of failing.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx
from fastapi import Request

from harvestchain.config import Settings

logger = logging.getLogger("harvestchain.storage")

# Same width as the ledger's bytes32 data hash
FINGERPRINT_LENGTH = 31


class StorageUnavailableError(Exception):
    """Proof storage is unconfigured, unreachable, or rejected the upload."""


@dataclass
class StoredObject:
    ref: str
    url: str


def canonical_json(document: dict) -> bytes:
    return json.dumps(document, sort_keys=True, separators=(",", ":"), default=str).encode("utf-8")


def fingerprint(document: dict) -> str:
    """Fixed-size hex fingerprint of a document's canonical JSON encoding."""
    return hashlib.sha256(canonical_json(document)).hexdigest()[:FINGERPRINT_LENGTH]


class ProofStorage:
    def __init__(
        self,
        api_url: str,
        api_jwt: str = "",
        gateway: str = "gateway.pinata.cloud",
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_jwt = api_jwt
        self.gateway = gateway
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProofStorage":
        return cls(
            api_url=settings.storage_api_url,
            api_jwt=settings.storage_api_jwt,
            gateway=settings.storage_gateway,
            timeout=settings.storage_timeout_seconds,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.api_jwt)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                headers={"Authorization": f"Bearer {self.api_jwt}"},
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def resolve(self, ref: str) -> str:
        return f"https://{self.gateway}/ipfs/{ref}"

    async def store(self, content: bytes, name: str, content_type: str = "application/octet-stream") -> StoredObject:
        if not self.configured:
            raise StorageUnavailableError("Proof storage credentials are not configured")

        metadata = json.dumps({
            "name": name,
            "keyvalues": {"uploadedAt": datetime.now(timezone.utc).isoformat()},
        })
        try:
            response = await self._get_client().post(
                "/pinning/pinFileToIPFS",
                files={"file": (name, content, content_type)},
                data={"pinataMetadata": metadata},
            )
            response.raise_for_status()
            ref = response.json()["IpfsHash"]
        except httpx.HTTPError as exc:
            raise StorageUnavailableError(f"Proof storage upload failed for {name}: {exc}") from exc
        except (ValueError, KeyError) as exc:
            raise StorageUnavailableError(f"Proof storage sent an unexpected response for {name}") from exc

        logger.info("Stored %s (%d bytes) as %s", name, len(content), ref)
        return StoredObject(ref=ref, url=self.resolve(ref))

    async def store_json(self, document: dict, name: str) -> StoredObject:
        return await self.store(canonical_json(document), name, content_type="application/json")


def get_proof_storage(request: Request) -> ProofStorage:
    """Return the process-wide ProofStorage built in the lifespan."""
    return request.app.state.proof_storage
