"""Operational sessions that authorize a vendor to redeem vouchers.

A session is scoped to business ids and optionally location ids. The raw token
is returned once at creation; only its peppered HMAC digest is stored.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from dealvault.core.config import get_settings
from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.db.repo.vendor_sessions_repo import VendorSessionsRepo
from dealvault.enforcement.gates import require_active_business, require_active_subscription
from dealvault.enforcement.types import IssuedVendorSession, VendorSessionContext
from dealvault.identity.types import VendorContext

logger = structlog.get_logger(__name__)

VENDOR_SESSION_MIN_HOURS = 1
VENDOR_SESSION_MAX_HOURS = 12
VENDOR_SESSION_MAX_LOCATIONS = 50
VENDOR_SESSION_TOKEN_BYTES = 32


def generate_session_token() -> str:
    return secrets.token_hex(VENDOR_SESSION_TOKEN_BYTES)


def hash_session_token(token: str, *, pepper: str | None = None) -> str:
    key = (pepper if pepper is not None else get_settings().vendor_session_pepper).encode("utf-8")
    return hmac.new(key, token.encode("utf-8"), hashlib.sha256).hexdigest()


def _normalize_location_ids(location_ids: Sequence[str] | None) -> tuple[str, ...] | None:
    if not location_ids:
        return ()
    ordered: list[str] = []
    for raw in location_ids:
        value = raw.strip()
        if not value or len(value) > 64:
            return None
        if value not in ordered:
            ordered.append(value)
    if len(ordered) > VENDOR_SESSION_MAX_LOCATIONS:
        return None
    return tuple(ordered)


async def create_vendor_session(
    session: AsyncSession,
    *,
    vendor: VendorContext,
    business_ids: Sequence[UUID] | None = None,
    location_ids: Sequence[str] | None = None,
    duration_hours: int | None = None,
    now_utc: datetime | None = None,
) -> Result[IssuedVendorSession]:
    now = now_utc or datetime.now(timezone.utc)
    hours = duration_hours if duration_hours is not None else get_settings().vendor_session_default_hours
    if not VENDOR_SESSION_MIN_HOURS <= hours <= VENDOR_SESSION_MAX_HOURS:
        return fail(
            FailureCode.INVALID_INPUT,
            f"session duration must be {VENDOR_SESSION_MIN_HOURS}..{VENDOR_SESSION_MAX_HOURS} hours",
        )

    scoped_businesses = tuple(dict.fromkeys(business_ids or (vendor.business_id,)))
    if any(business_id != vendor.business_id for business_id in scoped_businesses):
        return fail(FailureCode.VENDOR_NOT_OWNER, "session may only cover the vendor's own business")

    scoped_locations = _normalize_location_ids(location_ids)
    if scoped_locations is None:
        return fail(FailureCode.INVALID_INPUT, "invalid location ids")

    business_gate = await require_active_business(session, vendor.business_id)
    if not business_gate.ok:
        return business_gate
    subscription_gate = await require_active_subscription(session, vendor.business_id, now_utc=now)
    if not subscription_gate.ok:
        return subscription_gate

    token = generate_session_token()
    expires_at = now + timedelta(hours=hours)
    row = await VendorSessionsRepo.create(
        session,
        vendor_user_id=vendor.id,
        token_digest=hash_session_token(token),
        business_ids=scoped_businesses,
        location_ids=scoped_locations,
        expires_at=expires_at,
        now_utc=now,
    )
    logger.info(
        "vendor_session_created",
        vendor_user_id=str(vendor.id),
        vendor_session_id=str(row.id),
        business_id=str(vendor.business_id),
        location_count=len(scoped_locations),
        expires_at=expires_at.isoformat(),
    )
    return Ok(
        IssuedVendorSession(
            token=token,
            session_id=row.id,
            business_ids=scoped_businesses,
            location_ids=scoped_locations,
            expires_at=expires_at,
        )
    )


async def validate_vendor_session(
    session: AsyncSession,
    token: str | None,
    *,
    now_utc: datetime | None = None,
) -> VendorSessionContext | None:
    if not token:
        return None
    now = now_utc or datetime.now(timezone.utc)
    row = await VendorSessionsRepo.get_active_by_digest(session, hash_session_token(token))
    if row is None:
        return None
    if row.expires_at <= now:
        await VendorSessionsRepo.deactivate_by_id(session, row.id)
        return None

    vendor = await IdentitiesRepo.get_by_id(session, row.vendor_user_id)
    if vendor is None or vendor.status != "ACTIVE" or vendor.role != "VENDOR":
        return None

    await VendorSessionsRepo.touch_activity(session, row.id, now_utc=now)
    return VendorSessionContext(
        session_id=row.id,
        vendor_user_id=row.vendor_user_id,
        business_ids=tuple(row.business_ids),
        location_ids=tuple(row.location_ids or ()),
        expires_at=row.expires_at,
    )


async def revoke_vendor_session(session: AsyncSession, token: str | None) -> bool:
    if not token:
        return False
    revoked = await VendorSessionsRepo.deactivate_by_digest(session, hash_session_token(token))
    return revoked > 0


async def revoke_all_vendor_sessions(session: AsyncSession, vendor_user_id: UUID) -> int:
    revoked = await VendorSessionsRepo.deactivate_all_for_vendor(session, vendor_user_id)
    if revoked:
        logger.info("vendor_sessions_revoked", vendor_user_id=str(vendor_user_id), revoked=revoked)
    return revoked
