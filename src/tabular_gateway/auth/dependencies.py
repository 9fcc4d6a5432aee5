from __future__ import annotations

from typing import Optional

from fastapi import Header

from ..errors import AuthHeaderError

_BEARER_PREFIX = "Bearer "


def parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise AuthHeaderError("Authorization header is missing or invalid.")
    token = authorization[len(_BEARER_PREFIX):].strip()
    if not token or " " in token:
        raise AuthHeaderError("Authorization header is missing or invalid.")
    return token


def bearer_token(authorization: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency returning the caller's bearer token."""
    return parse_bearer_token(authorization)
