from __future__ import annotations
from fastapi import Request
from .exceptions import ServiceError
from .. import storage
from ..config import get_token_ttl

TOKEN_TTL = get_token_ttl()


def require_auth(authorization: str | None = None, request: Request | None = None) -> str:
    """Validate token from the ``Authorization`` header and return the user id."""

    header = authorization
    if request is not None and not header:
        header = request.headers.get("Authorization")

    if not header or not header.startswith("Bearer "):
        raise ServiceError("Please authenticate.", 401)

    token = header[7:]

    info = storage.get_token(token)
    if not info:
        raise ServiceError("Please authenticate.", 401)
    user_id, ts = info
    if storage.utcnow() - ts > TOKEN_TTL:
        storage.delete_token(token)
        raise ServiceError("Token expired", 401)
    return user_id


def bearer_token(authorization: str | None) -> str | None:
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    return None
