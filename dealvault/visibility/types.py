from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class VoucherView:
    voucher_id: UUID
    deal_id: UUID
    business_id: UUID
    status: str
    display_status: str
    issued_at: datetime
    expires_at: datetime | None
    redeemed_at: datetime | None
    qr_token: str | None = None
    account_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class RedemptionView:
    redemption_id: UUID
    voucher_id: UUID
    deal_id: UUID
    business_id: UUID
    vendor_user_id: UUID
    location_id: str | None
    original_value: Decimal | None
    deal_price: Decimal
    redeemed_at: datetime


@dataclass(frozen=True, slots=True)
class RedemptionHistory:
    voucher: VoucherView
    redemption: RedemptionView | None


@dataclass(frozen=True, slots=True)
class AuditEntryView:
    entry_id: int
    voucher_id: UUID | None
    action: str
    actor_role: str
    actor_user_id: UUID | None
    reason: str | None
    metadata: dict[str, object]
    created_at: datetime


@dataclass(frozen=True, slots=True)
class Page(Generic[T]):
    items: list[T]
    total: int
    page: int
    limit: int
