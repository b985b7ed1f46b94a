"""
Bearer tokens for the shell client.

Tokens are HS256 JWTs signed with the secret stored in the configs table.
They carry `username`, `systemName` and `user_id` and live for
TOKEN_LIFETIME (10 000 hours by default), so in practice a token is a
long-lived session credential for one system.

A protected route depends on `require_identity`, which looks for the token
in the `Authorization: Bearer <token>` header, then the `token` query
parameter, then the `jwt` cookie, and only accepts it while the claimed
username still exists.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from config import INT32_MAX, JWT_ALGORITHM, TOKEN_LIFETIME
from database import get_db
from errors import AuthError
from users import username_exists

logger = logging.getLogger(__name__)

TOKEN_HEAD_NAME = "Bearer"


@dataclass
class Identity:
    username: str
    system_name: str
    user_id: int


def issue_token(secret: str, identity: Identity, now: Optional[float] = None) -> str:
    now = time.time() if now is None else now
    claims = {
        "username": identity.username,
        "systemName": identity.system_name,
        "user_id": identity.user_id,
        "exp": int(now + TOKEN_LIFETIME.total_seconds()),
        "orig_iat": int(now),
    }
    return jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)


def coerce_user_id(value) -> int:
    """
    Claims decoded from JSON may hold the id as int or float; both become
    a non-negative int that fits the users.id column.
    """
    if isinstance(value, bool):
        raise AuthError("invalid user_id claim")
    if isinstance(value, float):
        if not value.is_integer():
            raise AuthError("invalid user_id claim")
        value = int(value)
    if not isinstance(value, int) or not 0 <= value <= INT32_MAX:
        raise AuthError("invalid user_id claim")
    return value


def decode_token(secret: str, token: str) -> Identity:
    try:
        claims = jwt.decode(
            token, secret, algorithms=[JWT_ALGORITHM], options={"require": ["exp"]}
        )
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("token is expired") from exc
    except jwt.InvalidTokenError as exc:
        raise AuthError(str(exc) or "invalid token") from exc

    username = claims.get("username")
    system_name = claims.get("systemName", "")
    if not isinstance(username, str) or not isinstance(system_name, str):
        raise AuthError("invalid token claims")
    return Identity(
        username=username,
        system_name=system_name,
        user_id=coerce_user_id(claims.get("user_id")),
    )


def extract_token(request: Request) -> str:
    header = request.headers.get("Authorization")
    if header:
        parts = header.split(" ", 1)
        if len(parts) == 2 and parts[0] == TOKEN_HEAD_NAME and parts[1].strip():
            return parts[1].strip()
    token = request.query_params.get("token") or request.cookies.get("jwt")
    if token:
        return token
    if header:
        raise AuthError("auth header is invalid")
    raise AuthError("auth header is empty")


def require_identity(request: Request, db: Session = Depends(get_db)) -> Identity:
    """FastAPI dependency guarding protected routes."""
    identity = decode_token(request.app.state.secret, extract_token(request))
    if not username_exists(db, identity.username):
        logger.warning("token for unknown user %r rejected", identity.username)
        raise AuthError("you don't have permission to access this resource")
    return identity
