from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any

from fastapi import Header, HTTPException
from jose import jwt, JWTError, ExpiredSignatureError
from loguru import logger

from caddate.core.config import (
    AUTH_DEBUG,
    JWT_ALGORITHM,
    JWT_EXPIRE_MINUTES,
    JWT_SECRET,
)
from caddate.core.errors import AuthError


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _get_bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise AuthError("Missing Authorization header")

    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthError("Invalid Authorization header format")

    token = parts[1].strip()
    if not token:
        raise AuthError("Missing bearer token")

    return token


# ------------------------------------------------------------
# Issue / Verify
# ------------------------------------------------------------
def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
) -> str:
    now = datetime.now(timezone.utc)
    exp = now + (expires_in if expires_in is not None else timedelta(minutes=JWT_EXPIRE_MINUTES))
    claims: Dict[str, Any] = {
        "sub": str(user_id),
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: Optional[str]) -> Dict[str, Any]:
    """
    Verify signature + expiry and return the claims.
    Used by both the REST dependency and the socket handshake.
    """
    if not token:
        raise AuthError("No token provided")

    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError:
        raise AuthError("Token expired")
    except JWTError:
        raise AuthError("Invalid token")

    # older tokens carry `userId` instead of `sub`
    sub = payload.get("sub") or payload.get("userId")
    if not sub:
        raise AuthError("Token missing sub claim")

    payload["sub"] = str(sub)
    return payload


# ------------------------------------------------------------
# Main Dependency
# ------------------------------------------------------------
def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
) -> str:
    try:
        token = _get_bearer_token(authorization)
        if AUTH_DEBUG:
            logger.debug(f"[auth] token_len={len(token)} token_prefix={token[:20]}...")
        payload = decode_access_token(token)
    except AuthError as e:
        raise HTTPException(status_code=401, detail=e.message)

    user_id = payload["sub"]
    if AUTH_DEBUG:
        logger.debug(f"[auth] user_id={user_id}")

    return user_id
