from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class VoucherStatus(str, Enum):
    ISSUED = "ISSUED"
    ASSIGNED = "ASSIGNED"
    REDEEMED = "REDEEMED"
    EXPIRED = "EXPIRED"


class AuditAction(str, Enum):
    ISSUED = "ISSUED"
    REDEEMED = "REDEEMED"
    REDEMPTION_FAILED = "REDEMPTION_FAILED"


@dataclass(frozen=True, slots=True)
class BusinessContext:
    id: UUID
    owner_user_id: UUID | None
    status: str


@dataclass(frozen=True, slots=True)
class DealContext:
    id: UUID
    business_id: UUID
    status: str
    deal_price: Decimal
    original_value: Decimal | None
    voucher_expiration_hours: int | None


@dataclass(frozen=True, slots=True)
class IssuedVoucher:
    voucher_id: UUID
    validation_id: UUID
    qr_token: str
    status: str
    issued_at: datetime
    expires_at: datetime | None
    idempotent_replay: bool


@dataclass(frozen=True, slots=True)
class RedemptionOutcome:
    voucher_id: UUID
    redemption_id: UUID
    deal_price: Decimal
    redeemed_at: datetime
    message: str


@dataclass(frozen=True, slots=True)
class VendorSessionContext:
    session_id: UUID
    vendor_user_id: UUID
    business_ids: tuple[UUID, ...]
    location_ids: tuple[str, ...]
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class IssuedVendorSession:
    token: str
    session_id: UUID
    business_ids: tuple[UUID, ...]
    location_ids: tuple[str, ...]
    expires_at: datetime
