"""
Bearer tokens for trip participants.

RoadHive keeps no user table: the token is the whole identity. A valid
token names the user, their tenant and their role; ``email`` is only needed
by receivers, whose loads are matched on it.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from jose import JWTError, jwt
from roadhive.app.core.config import settings

IDENTITY_CLAIMS = ("user_id", "tenant_id", "role")


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Sign an identity.

    Args:
        data: claims, e.g. ``{"sub": "driver@roadhive.in", "user_id": "u-1",
            "tenant_id": "t-transporter", "role": "DRIVER"}``
        expires_delta: lifetime, defaults to ``access_token_expire_minutes``
    """
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {**data, "exp": datetime.now(timezone.utc) + lifetime}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Verified claims, or None for a bad signature or an expired token."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def missing_identity_claims(claims: Dict[str, Any]) -> List[str]:
    return [name for name in IDENTITY_CLAIMS if not claims.get(name)]
