"""Identity of the caller, read from an already-verified bearer token.

Signature verification happens at the gateway in front of this service; here
the claims are only decoded so the session cache can be keyed by user id and
the role can be reported back. The raw token is forwarded to the backend.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "regular"

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Identity:
    user_id: Optional[str]
    role: str = DEFAULT_ROLE
    token: str = ""


def decode_identity(token: str) -> Identity:
    """Decode the token claims without verifying them. Never raises."""
    if not token:
        return Identity(user_id=None)
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        logger.warning("Could not decode bearer token: %s", type(e).__name__)
        return Identity(user_id=None, token=token)

    user_id = claims.get("id")
    if user_id is None:
        user_id = claims.get("userId")
    return Identity(
        user_id=str(user_id) if user_id is not None else None,
        role=str(claims.get("role") or DEFAULT_ROLE),
        token=token,
    )


def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Identity:
    return decode_identity(credentials.credentials if credentials else "")


def require_identity(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    return identity
