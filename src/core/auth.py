"""Bearer tokens issued by the identity layer (JWT, HS256 by default)."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

import jwt
from src.core.config import get_settings


class TokenError(Exception):
    """Raised when a bearer token cannot be decoded or validated."""


class Role(str, Enum):
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"

    @classmethod
    def contains(cls, value: str) -> bool:
        return value in {role.value for role in cls}


def create_access_token(
    subject: str,
    *,
    roles: Sequence[str],
    email: str | None = None,
    school_id: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Generate a signed access token for ``subject`` (the student or staff id)."""
    settings = get_settings()

    unknown = [role for role in roles if role not in settings.allowed_roles]
    if unknown:
        raise TokenError(f"Unsupported role(s): {', '.join(unknown)}")

    issued_at = datetime.now(UTC)
    ttl = expires_delta or timedelta(seconds=settings.access_token_ttl_seconds)
    claims: dict[str, Any] = {
        "sub": subject,
        "roles": list(roles),
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + ttl).timestamp()),
        "iss": settings.app_name,
    }
    if email:
        claims["email"] = email
    if school_id:
        claims["school_id"] = school_id

    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a bearer token, checking signature, expiry, issuer and roles."""
    settings = get_settings()

    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            issuer=settings.app_name,
            options={"require": ["sub", "roles", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("Token expired") from exc
    except jwt.PyJWTError as exc:
        raise TokenError("Invalid token") from exc

    for role in claims.get("roles", []):
        if not Role.contains(role):
            raise TokenError(f"Unsupported role: {role}")
    return claims
