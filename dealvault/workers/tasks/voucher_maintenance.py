from __future__ import annotations

from datetime import datetime, timezone

import structlog

from dealvault.db.repo.vendor_sessions_repo import VendorSessionsRepo
from dealvault.db.repo.vouchers_repo import VouchersRepo
from dealvault.db.session import SessionLocal
from dealvault.services.alerts import send_ops_alert
from dealvault.workers.asyncio_runner import run_async_job
from dealvault.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

INTEGRITY_SCAN_BATCH_LIMIT = 100
INTEGRITY_ALERT_SAMPLE_SIZE = 10


async def run_vendor_session_cleanup_async() -> dict[str, int]:
    now_utc = datetime.now(timezone.utc)
    async with SessionLocal.begin() as session:
        deactivated = await VendorSessionsRepo.deactivate_expired(session, now_utc=now_utc)

    result = {"deactivated_sessions": deactivated}
    logger.info("vendor_session_cleanup_finished", **result)
    return result


async def run_redemption_integrity_scan_async() -> dict[str, int]:
    """Report vouchers whose status and redemption rows disagree. Never repairs."""
    async with SessionLocal.begin() as session:
        redeemed_without_row = await VouchersRepo.list_redeemed_without_redemption(
            session,
            limit=INTEGRITY_SCAN_BATCH_LIMIT,
        )
        reverted_with_row = await VouchersRepo.list_redemptions_on_unredeemed(
            session,
            limit=INTEGRITY_SCAN_BATCH_LIMIT,
        )

    result = {
        "redeemed_without_redemption": len(redeemed_without_row),
        "redemption_on_unredeemed": len(reverted_with_row),
    }
    if redeemed_without_row or reverted_with_row:
        await send_ops_alert(
            event="voucher_redemption_integrity_violation",
            payload={
                **result,
                "sample_redeemed_without_redemption": [
                    str(voucher_id) for voucher_id in redeemed_without_row[:INTEGRITY_ALERT_SAMPLE_SIZE]
                ],
                "sample_redemption_on_unredeemed": [
                    str(voucher_id) for voucher_id in reverted_with_row[:INTEGRITY_ALERT_SAMPLE_SIZE]
                ],
            },
        )
        logger.error("voucher_redemption_integrity_violation", **result)
    else:
        logger.info("voucher_redemption_integrity_scan_finished", **result)
    return result


@celery_app.task(name="dealvault.workers.tasks.voucher_maintenance.run_vendor_session_cleanup")
def run_vendor_session_cleanup() -> dict[str, int]:
    return run_async_job(run_vendor_session_cleanup_async)


@celery_app.task(name="dealvault.workers.tasks.voucher_maintenance.run_redemption_integrity_scan")
def run_redemption_integrity_scan() -> dict[str, int]:
    return run_async_job(run_redemption_integrity_scan_async)


celery_app.conf.beat_schedule = celery_app.conf.beat_schedule or {}
celery_app.conf.beat_schedule.update(
    {
        "vendor-session-cleanup-every-10-minutes": {
            "task": "dealvault.workers.tasks.voucher_maintenance.run_vendor_session_cleanup",
            "schedule": 600.0,
            "options": {"queue": "q_maintenance"},
        },
        "redemption-integrity-scan-every-10-minutes": {
            "task": "dealvault.workers.tasks.voucher_maintenance.run_redemption_integrity_scan",
            "schedule": 600.0,
            "options": {"queue": "q_maintenance"},
        },
    }
)
