"""FastAPI dependencies for the authenticated principal and its permissions.

Dependencies:
  get_current_principal   → decode JWT, return Principal
  require_permission(...) → restrict to roles holding the listed permissions
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from harvestchain.auth.jwt import decode_token
from harvestchain.auth.permissions import has_permission, resolve_permissions
from harvestchain.schemas.auth import Principal, Role

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


# ── Core principal dependency ───────────────────────────────

async def get_current_principal(
    token: str = Depends(oauth2_scheme),
) -> Principal:
    """Decode the bearer token and return the principal it asserts.

    The identity service is trusted; no user lookup happens here.
    """
    payload = decode_token(token)
    user_id: str | None = payload.get("sub")
    if not user_id or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = Role(payload.get("role"))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token carries an unknown role",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Principal(
        id=user_id,
        role=role,
        display_name=payload.get("name") or "",
        wallet_ref=payload.get("wallet"),
    )


def require_permission(*perms: str):
    """Dependency factory: restrict to principals whose role holds ALL listed permissions."""
    async def _check(principal: Principal = Depends(get_current_principal)) -> Principal:
        granted = resolve_permissions(principal.role.value)
        missing = [p for p in perms if not has_permission(granted, p)]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(missing)}",
            )
        return principal

    return _check
