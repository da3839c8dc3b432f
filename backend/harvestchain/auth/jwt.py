"""JWT decoding (and issuing, for tooling and tests).

Tokens are minted by the identity service; this service only verifies them
and trusts the claims.

Token claims:
  - sub:     user ID
  - role:    farmer | distributor | retailer | consumer
  - name:    display name
  - wallet:  wallet / ledger reference (optional)
  - type:    "access"
  - exp:     expiry timestamp
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from harvestchain.config import settings

ALGORITHM = settings.jwt_algorithm


def create_access_token(
    user_id: str,
    role: str,
    name: str = "",
    wallet: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "role": role,
        "name": name,
        "type": "access",
        "exp": expire,
    }
    if wallet:
        payload["wallet"] = wallet
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}
