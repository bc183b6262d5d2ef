"""
Bearer-token identity.

Tokens are issued by the external identity provider and carry the user id in
`sub` and the capability in `role`. The engine only verifies them and turns
them into a Principal once, at the HTTP boundary.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

import settings
from errors import Unauthenticated
from schemas import Principal, Role

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_EXPIRE_MINUTES = 24 * 60

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(user_id: str, role: Role = "user", expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_principal(token: str) -> Principal:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as exc:
        logger.info("Rejected bearer token", reason=str(exc))
        raise Unauthenticated("Could not validate credentials")
    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated("Could not validate credentials")
    role = "admin" if payload.get("role") == "admin" else "user"
    return Principal(user_id=str(user_id), role=role)


async def get_optional_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Principal]:
    """Principal when a token is sent, None for anonymous callers."""
    if credentials is None:
        return None
    return decode_principal(credentials.credentials)


async def get_current_principal(principal: Optional[Principal] = Depends(get_optional_principal)) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal
