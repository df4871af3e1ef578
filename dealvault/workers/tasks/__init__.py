from dealvault.workers.tasks.voucher_maintenance import (
    run_redemption_integrity_scan,
    run_vendor_session_cleanup,
)

__all__ = [
    "run_redemption_integrity_scan",
    "run_vendor_session_cleanup",
]
