"""
Request identity.

Every Trip/Load route resolves the caller from the bearer token alone.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from roadhive.app.core.jwt import decode_access_token, missing_identity_claims

security = HTTPBearer()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    The caller's claims: ``user_id``, ``tenant_id``, ``role`` and, for
    receivers, ``email``.

    Raises:
        HTTPException: 401 for an invalid or expired token, or one without
            a tenant, user or role
    """
    claims = decode_access_token(credentials.credentials)
    if claims is None:
        raise _unauthorized("Could not validate credentials")

    missing = missing_identity_claims(claims)
    if missing:
        raise _unauthorized(f"Invalid token payload, missing: {', '.join(missing)}")

    # Ids are compared as strings against load columns
    claims["user_id"] = str(claims["user_id"])
    claims["tenant_id"] = str(claims["tenant_id"])
    if claims.get("email"):
        claims["email"] = claims["email"].lower()
    return claims
