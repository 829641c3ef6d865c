"""
Password hashing, bearer tokens and the authenticated-user dependency.
"""
import logging
import time
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Header
from werkzeug.security import check_password_hash, generate_password_hash

from .config import Config
from .context import AppContext, get_context
from .errors import AuthenticationError

logger = logging.getLogger(__name__)


def hash_password(raw_password: str) -> str:
    return generate_password_hash(raw_password)


def verify_password(password_hash: str, raw_password: str) -> bool:
    return check_password_hash(password_hash, raw_password)


def create_token(user_id: str, config: Config) -> str:
    """Issue a signed token carrying the user id, valid for TOKEN_TTL_SECONDS."""
    now = int(time.time())
    payload = {
        "user": {"id": str(user_id)},
        "iat": now,
        "exp": now + config.TOKEN_TTL_SECONDS,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


def decode_token(token: str, config: Config) -> str:
    """Verify signature and expiry and return the embedded user id."""
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=[config.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Not authorized, token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Not authorized, invalid token")

    user = payload.get("user")
    user_id = user.get("id") if isinstance(user, dict) else None
    if not user_id:
        raise AuthenticationError("Not authorized, invalid token")
    return str(user_id)


def get_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


async def get_current_user(
    authorization: Optional[str] = Header(None),
    ctx: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    """Resolve the bearer token of the request to a live user record."""
    token = get_bearer_token(authorization)
    if token is None:
        raise AuthenticationError("Not authorized, no token")

    user_id = decode_token(token, ctx.config)
    user = ctx.db.get_user_by_id(user_id)
    if user is None:
        logger.info(f"Token presented for missing user {user_id}")
        raise AuthenticationError("Not authorized, user not found")
    return user
