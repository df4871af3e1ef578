from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from dealvault.core.config import get_settings
from dealvault.identity.types import IdentityClaims, IdentityRole

IDENTITY_TOKEN_ALGORITHM = "HS256"
IDENTITY_TOKEN_TYPE = "identity"


class IdentityTokenError(Exception):
    pass


def sign_identity_token(
    *,
    identity_id: UUID,
    role: IdentityRole,
    now_utc: datetime | None = None,
    ttl_hours: int | None = None,
    secret: str | None = None,
) -> str:
    settings = get_settings()
    issued_at = now_utc or datetime.now(timezone.utc)
    lifetime = timedelta(hours=ttl_hours if ttl_hours is not None else settings.identity_jwt_ttl_hours)
    payload = {
        "sub": str(identity_id),
        "role": role.value,
        "type": IDENTITY_TOKEN_TYPE,
        "iat": int(issued_at.timestamp()),
        "exp": int((issued_at + lifetime).timestamp()),
    }
    return jwt.encode(
        payload,
        secret or settings.identity_jwt_secret,
        algorithm=IDENTITY_TOKEN_ALGORITHM,
    )


def decode_identity_token(token: str, *, secret: str | None = None) -> IdentityClaims:
    try:
        payload = jwt.decode(
            token,
            secret or get_settings().identity_jwt_secret,
            algorithms=[IDENTITY_TOKEN_ALGORITHM],
            options={"require": ["sub", "exp", "iat"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise IdentityTokenError("token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise IdentityTokenError("invalid token") from exc

    if payload.get("type") != IDENTITY_TOKEN_TYPE:
        raise IdentityTokenError("unexpected token type")
    try:
        identity_id = UUID(str(payload["sub"]))
        role = IdentityRole(str(payload.get("role")))
    except ValueError as exc:
        raise IdentityTokenError("malformed claims") from exc
    return IdentityClaims(identity_id=identity_id, role=role)


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = value.strip()
    return token or None
