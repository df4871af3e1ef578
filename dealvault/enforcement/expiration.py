from __future__ import annotations

from datetime import datetime, timedelta

from dealvault.core.results import FailureCode, Ok, Result, fail
from dealvault.enforcement.types import VoucherStatus


def compute_voucher_expiry(
    *,
    issued_at: datetime,
    deal_expiration_hours: int | None,
    default_hours: int,
    max_hours: int,
) -> Result[datetime]:
    hours = deal_expiration_hours if deal_expiration_hours is not None else default_hours
    if hours <= 0:
        return fail(FailureCode.EXPIRATION_POLICY_INVALID, "voucher expiration must be positive")
    if hours > max_hours:
        return fail(
            FailureCode.EXPIRATION_POLICY_INVALID,
            f"voucher expiration exceeds the {max_hours} hour platform maximum",
        )
    return Ok(issued_at + timedelta(hours=hours))


def is_expired(expires_at: datetime | None, *, now_utc: datetime) -> bool:
    return expires_at is not None and now_utc >= expires_at


def display_status(status: str, expires_at: datetime | None, *, now_utc: datetime) -> str:
    if status == VoucherStatus.REDEEMED.value:
        return status
    if is_expired(expires_at, now_utc=now_utc):
        return VoucherStatus.EXPIRED.value
    return status
