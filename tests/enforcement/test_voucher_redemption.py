from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from dealvault.core.results import FailureCode
from dealvault.enforcement import redemption
from dealvault.enforcement.errors import VoucherRejectedError
from dealvault.enforcement.redemption import VoucherRedemptionService, _check_redeemable
from dealvault.enforcement.types import RedemptionOutcome, VendorSessionContext

NOW = datetime(2026, 7, 2, 18, 30, tzinfo=timezone.utc)


class _PgError(Exception):
    def __init__(self, sqlstate: str) -> None:
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


def _vendor(*, location_ids: tuple[str, ...] = ()) -> VendorSessionContext:
    return VendorSessionContext(
        session_id=uuid4(),
        vendor_user_id=uuid4(),
        business_ids=(uuid4(),),
        location_ids=location_ids,
        expires_at=NOW + timedelta(hours=4),
    )


def _voucher(vendor: VendorSessionContext, **overrides: object) -> SimpleNamespace:
    fields: dict[str, object] = {
        "id": uuid4(),
        "business_id": vendor.business_ids[0],
        "deal_id": uuid4(),
        "status": "ISSUED",
        "expires_at": NOW + timedelta(days=1),
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


def _assert_rejected(code: FailureCode, voucher, vendor, *, location_id: str | None = None) -> None:
    with pytest.raises(VoucherRejectedError) as excinfo:
        _check_redeemable(voucher, vendor=vendor, location_id=location_id, now_utc=NOW)
    assert excinfo.value.code is code


def test_redeemable_voucher_passes_checks() -> None:
    vendor = _vendor(location_ids=("front-desk",))
    _check_redeemable(_voucher(vendor), vendor=vendor, location_id="front-desk", now_utc=NOW)


def test_voucher_of_other_business_is_not_owned() -> None:
    vendor = _vendor()
    _assert_rejected(FailureCode.VENDOR_NOT_OWNER, _voucher(vendor, business_id=uuid4()), vendor)


def test_redeemed_voucher_is_already_redeemed() -> None:
    vendor = _vendor()
    _assert_rejected(FailureCode.VOUCHER_ALREADY_REDEEMED, _voucher(vendor, status="REDEEMED"), vendor)


@pytest.mark.parametrize("status", ["ASSIGNED", "EXPIRED"])
def test_non_issued_voucher_is_rejected(status: str) -> None:
    vendor = _vendor()
    _assert_rejected(FailureCode.VOUCHER_NOT_ISSUED, _voucher(vendor, status=status), vendor)


def test_voucher_past_expiry_is_expired() -> None:
    vendor = _vendor()
    _assert_rejected(FailureCode.VOUCHER_EXPIRED, _voucher(vendor, expires_at=NOW), vendor)


def test_location_outside_session_scope_is_unauthorized() -> None:
    vendor = _vendor(location_ids=("front-desk",))
    _assert_rejected(FailureCode.LOCATION_UNAUTHORIZED, _voucher(vendor), vendor, location_id="patio")


def test_ownership_is_checked_before_status() -> None:
    vendor = _vendor()
    foreign_redeemed = _voucher(vendor, business_id=uuid4(), status="REDEEMED")
    _assert_rejected(FailureCode.VENDOR_NOT_OWNER, foreign_redeemed, vendor)


@asynccontextmanager
async def _fake_transaction(**kwargs):  # noqa: ARG001
    yield SimpleNamespace()


def _install(
    monkeypatch,
    fake_session_factory,
    *,
    vendor: VendorSessionContext | None,
    outcome: object,
    reread_status: str | None = None,
    audit_error: Exception | None = None,
) -> list[dict[str, object]]:
    audited: list[dict[str, object]] = []

    async def fake_validate(session, token, *, now_utc):  # noqa: ARG001
        return vendor

    async def fake_redeem(session, **kwargs):  # noqa: ARG001
        current = outcome.pop(0) if isinstance(outcome, list) else outcome
        if isinstance(current, BaseException):
            raise current
        return current

    async def fake_record(**kwargs):
        if audit_error is not None:
            raise audit_error
        audited.append(kwargs)

    async def fake_get_by_id(session, voucher_id):  # noqa: ARG001
        if reread_status is None:
            return None
        return SimpleNamespace(id=voucher_id, business_id=uuid4(), status=reread_status)

    monkeypatch.setattr(redemption, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(redemption, "validate_vendor_session", fake_validate)
    monkeypatch.setattr(redemption, "serializable_transaction", _fake_transaction)
    monkeypatch.setattr(redemption, "record_redemption_failure", fake_record)
    monkeypatch.setattr(VoucherRedemptionService, "_redeem_in_transaction", fake_redeem)
    monkeypatch.setattr(redemption.VouchersRepo, "get_by_id", fake_get_by_id)
    return audited


def _outcome() -> RedemptionOutcome:
    return RedemptionOutcome(
        voucher_id=uuid4(),
        redemption_id=uuid4(),
        deal_price=Decimal("19.99"),
        redeemed_at=NOW,
        message=redemption.REDEEMED_MESSAGE,
    )


@pytest.mark.asyncio
async def test_successful_redemption(monkeypatch, fake_session_factory) -> None:
    outcome = _outcome()
    audited = _install(monkeypatch, fake_session_factory, vendor=_vendor(), outcome=outcome)

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.ok is True
    assert result.value.deal_price == Decimal("19.99")
    assert audited == []


@pytest.mark.asyncio
async def test_invalid_session_is_audited_with_masked_token(monkeypatch, fake_session_factory) -> None:
    audited = _install(monkeypatch, fake_session_factory, vendor=None, outcome=_outcome())

    result = await VoucherRedemptionService.redeem_voucher(
        session_token="expired",
        qr_token="VCH-ABC-0123456789AB",
        now_utc=NOW,
    )

    assert result.code is FailureCode.INVALID_SESSION
    assert audited[0]["failure"].code is FailureCode.INVALID_SESSION
    assert audited[0]["voucher_ref"] == "VCH-ABC-************"
    assert audited[0]["actor_user_id"] is None


@pytest.mark.asyncio
async def test_exactly_one_identifier_required(monkeypatch, fake_session_factory) -> None:
    audited = _install(monkeypatch, fake_session_factory, vendor=_vendor(), outcome=_outcome())

    result = await VoucherRedemptionService.redeem_voucher(
        session_token="tok",
        voucher_id=uuid4(),
        qr_token="VCH-ABC-0123456789AB",
        now_utc=NOW,
    )

    assert result.code is FailureCode.INVALID_INPUT
    assert len(audited) == 1


@pytest.mark.asyncio
async def test_rejection_is_audited_and_returned(monkeypatch, fake_session_factory) -> None:
    vendor = _vendor()
    audited = _install(
        monkeypatch,
        fake_session_factory,
        vendor=vendor,
        outcome=VoucherRejectedError(FailureCode.VOUCHER_EXPIRED, "voucher has expired"),
    )
    voucher_id = uuid4()

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=voucher_id, now_utc=NOW)

    assert result.code is FailureCode.VOUCHER_EXPIRED
    assert audited[0]["voucher_id"] == voucher_id
    assert audited[0]["actor_user_id"] == vendor.vendor_user_id


@pytest.mark.asyncio
async def test_failed_audit_write_turns_into_internal_error(monkeypatch, fake_session_factory) -> None:
    _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=VoucherRejectedError(FailureCode.VOUCHER_NOT_FOUND, "voucher not found"),
        audit_error=RuntimeError("audit table unavailable"),
    )

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.code is FailureCode.INTERNAL


@pytest.mark.asyncio
async def test_lost_race_reports_already_redeemed(monkeypatch, fake_session_factory) -> None:
    _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=OperationalError("UPDATE", {}, _PgError("40001")),
        reread_status="REDEEMED",
    )

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.code is FailureCode.VOUCHER_ALREADY_REDEEMED


@pytest.mark.asyncio
async def test_unresolved_conflict_is_retryable(monkeypatch, fake_session_factory) -> None:
    _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=OperationalError("UPDATE", {}, _PgError("40001")),
        reread_status="ISSUED",
    )

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.code is FailureCode.SERIALIZATION_CONFLICT
    assert result.retryable is True


@pytest.mark.asyncio
async def test_statement_timeout_is_transaction_timeout(monkeypatch, fake_session_factory) -> None:
    _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=OperationalError("UPDATE", {}, _PgError("57014")),
    )

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.code is FailureCode.TRANSACTION_TIMEOUT


@pytest.mark.asyncio
async def test_invalid_session_audit_keeps_requested_voucher_id(monkeypatch, fake_session_factory) -> None:
    audited = _install(monkeypatch, fake_session_factory, vendor=None, outcome=_outcome())
    voucher_id = uuid4()

    result = await VoucherRedemptionService.redeem_voucher(session_token="gone", voucher_id=voucher_id, now_utc=NOW)

    assert result.code is FailureCode.INVALID_SESSION
    assert audited[0]["voucher_id"] == voucher_id
    assert audited[0]["voucher_ref"] == str(voucher_id)


@pytest.mark.asyncio
async def test_conflict_on_shared_row_retries_whole_transaction(monkeypatch, fake_session_factory) -> None:
    outcome = _outcome()
    audited = _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=[OperationalError("UPDATE", {}, _PgError("40001")), outcome],
        reread_status="ISSUED",
    )
    attempts: list[int] = []

    @asynccontextmanager
    async def counting_transaction(**kwargs):  # noqa: ARG001
        attempts.append(1)
        yield SimpleNamespace()

    monkeypatch.setattr(redemption, "serializable_transaction", counting_transaction)

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.ok is True
    assert result.value == outcome
    assert len(attempts) == 2
    assert audited == []


@pytest.mark.asyncio
async def test_shared_row_conflict_gives_up_after_max_attempts(monkeypatch, fake_session_factory) -> None:
    max_attempts = redemption.get_settings().voucher_redeem_max_attempts
    audited = _install(
        monkeypatch,
        fake_session_factory,
        vendor=_vendor(),
        outcome=[OperationalError("UPDATE", {}, _PgError("40001")) for _ in range(max_attempts)],
        reread_status="ISSUED",
    )

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=uuid4(), now_utc=NOW)

    assert result.code is FailureCode.SERIALIZATION_CONFLICT
    assert len(audited) == 1


def _install_locking_race(monkeypatch, fake_session_factory, *, vendor, winner) -> list[dict[str, object]]:
    """Run the real transaction body; the row lock wait ends in a serialization failure."""
    audited: list[dict[str, object]] = []

    async def fake_validate(session, token, *, now_utc):  # noqa: ARG001
        return vendor

    async def lock_fails(session, key):  # noqa: ARG001
        raise OperationalError("SELECT ... FOR UPDATE", {}, _PgError("40001"))

    async def fake_get_by_id(session, voucher_id):  # noqa: ARG001
        return winner if voucher_id == winner.id else None

    async def fake_get_by_qr_token(session, qr_token):  # noqa: ARG001
        return winner if qr_token == winner.qr_token else None

    async def fake_record(**kwargs):
        audited.append(kwargs)

    monkeypatch.setattr(redemption, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(redemption, "validate_vendor_session", fake_validate)
    monkeypatch.setattr(redemption, "serializable_transaction", _fake_transaction)
    monkeypatch.setattr(redemption, "record_redemption_failure", fake_record)
    monkeypatch.setattr(redemption.VouchersRepo, "get_by_id_for_update", lock_fails)
    monkeypatch.setattr(redemption.VouchersRepo, "get_by_qr_token_for_update", lock_fails)
    monkeypatch.setattr(redemption.VouchersRepo, "get_by_id", fake_get_by_id)
    monkeypatch.setattr(redemption.VouchersRepo, "get_by_qr_token", fake_get_by_qr_token)
    return audited


@pytest.mark.asyncio
async def test_losing_the_row_lock_by_id_reports_already_redeemed(monkeypatch, fake_session_factory) -> None:
    vendor = _vendor()
    winner = _voucher(vendor, status="REDEEMED", qr_token="VCH-ABC-0123456789AB")
    audited = _install_locking_race(monkeypatch, fake_session_factory, vendor=vendor, winner=winner)

    result = await VoucherRedemptionService.redeem_voucher(session_token="tok", voucher_id=winner.id, now_utc=NOW)

    assert result.code is FailureCode.VOUCHER_ALREADY_REDEEMED
    assert audited[0]["voucher_id"] == winner.id
    assert audited[0]["business_id"] == winner.business_id


@pytest.mark.asyncio
async def test_losing_the_row_lock_by_qr_token_reports_already_redeemed(monkeypatch, fake_session_factory) -> None:
    vendor = _vendor()
    winner = _voucher(vendor, status="REDEEMED", qr_token="VCH-ABC-0123456789AB")
    audited = _install_locking_race(monkeypatch, fake_session_factory, vendor=vendor, winner=winner)

    result = await VoucherRedemptionService.redeem_voucher(
        session_token="tok",
        qr_token=winner.qr_token,
        now_utc=NOW,
    )

    assert result.code is FailureCode.VOUCHER_ALREADY_REDEEMED
    assert audited[0]["voucher_id"] == winner.id
    assert audited[0]["voucher_ref"] == "VCH-ABC-************"
