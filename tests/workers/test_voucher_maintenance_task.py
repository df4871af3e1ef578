from __future__ import annotations

from uuid import uuid4

import pytest

from dealvault.workers.tasks import voucher_maintenance


def test_run_vendor_session_cleanup_task_wrapper(monkeypatch) -> None:
    async def fake_async() -> dict[str, int]:
        return {"deactivated_sessions": 4}

    monkeypatch.setattr(voucher_maintenance, "run_vendor_session_cleanup_async", fake_async)

    result = voucher_maintenance.run_vendor_session_cleanup()
    assert result["deactivated_sessions"] == 4


def test_run_redemption_integrity_scan_task_wrapper(monkeypatch) -> None:
    async def fake_async() -> dict[str, int]:
        return {"redeemed_without_redemption": 0, "redemption_on_unredeemed": 0}

    monkeypatch.setattr(voucher_maintenance, "run_redemption_integrity_scan_async", fake_async)

    result = voucher_maintenance.run_redemption_integrity_scan()
    assert result == {"redeemed_without_redemption": 0, "redemption_on_unredeemed": 0}


def test_maintenance_tasks_are_scheduled() -> None:
    schedule = voucher_maintenance.celery_app.conf.beat_schedule
    tasks = {entry["task"] for entry in schedule.values()}
    assert "dealvault.workers.tasks.voucher_maintenance.run_vendor_session_cleanup" in tasks
    assert "dealvault.workers.tasks.voucher_maintenance.run_redemption_integrity_scan" in tasks


def test_only_maintenance_tasks_are_registered() -> None:
    registered = {name for name in voucher_maintenance.celery_app.tasks if name.startswith("dealvault.")}
    assert registered == {
        "dealvault.workers.tasks.voucher_maintenance.run_vendor_session_cleanup",
        "dealvault.workers.tasks.voucher_maintenance.run_redemption_integrity_scan",
    }


def _patch_scan(monkeypatch, fake_session_factory, *, without_row, on_unredeemed) -> list[dict[str, object]]:
    alerts: list[dict[str, object]] = []

    async def fake_without_row(session, *, limit):  # noqa: ARG001
        return without_row

    async def fake_on_unredeemed(session, *, limit):  # noqa: ARG001
        return on_unredeemed

    async def fake_alert(*, event: str, payload: dict[str, object]) -> bool:
        alerts.append({"event": event, "payload": payload})
        return True

    monkeypatch.setattr(voucher_maintenance, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(voucher_maintenance.VouchersRepo, "list_redeemed_without_redemption", fake_without_row)
    monkeypatch.setattr(voucher_maintenance.VouchersRepo, "list_redemptions_on_unredeemed", fake_on_unredeemed)
    monkeypatch.setattr(voucher_maintenance, "send_ops_alert", fake_alert)
    return alerts


@pytest.mark.asyncio
async def test_integrity_scan_alerts_on_violation(monkeypatch, fake_session_factory) -> None:
    reverted = uuid4()
    alerts = _patch_scan(monkeypatch, fake_session_factory, without_row=[], on_unredeemed=[reverted])

    result = await voucher_maintenance.run_redemption_integrity_scan_async()

    assert result == {"redeemed_without_redemption": 0, "redemption_on_unredeemed": 1}
    assert alerts[0]["event"] == "voucher_redemption_integrity_violation"
    assert alerts[0]["payload"]["sample_redemption_on_unredeemed"] == [str(reverted)]


@pytest.mark.asyncio
async def test_clean_integrity_scan_sends_nothing(monkeypatch, fake_session_factory) -> None:
    alerts = _patch_scan(monkeypatch, fake_session_factory, without_row=[], on_unredeemed=[])

    result = await voucher_maintenance.run_redemption_integrity_scan_async()

    assert result["redemption_on_unredeemed"] == 0
    assert alerts == []


@pytest.mark.asyncio
async def test_vendor_session_cleanup_deactivates_expired(monkeypatch, fake_session_factory) -> None:
    async def fake_deactivate_expired(session, *, now_utc):  # noqa: ARG001
        return 2

    monkeypatch.setattr(voucher_maintenance, "SessionLocal", fake_session_factory)
    monkeypatch.setattr(voucher_maintenance.VendorSessionsRepo, "deactivate_expired", fake_deactivate_expired)

    result = await voucher_maintenance.run_vendor_session_cleanup_async()

    assert result == {"deactivated_sessions": 2}
