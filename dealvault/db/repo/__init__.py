from dealvault.db.repo.businesses_repo import BusinessesRepo
from dealvault.db.repo.deals_repo import DealsRepo
from dealvault.db.repo.identities_repo import IdentitiesRepo
from dealvault.db.repo.redemptions_repo import RedemptionsRepo
from dealvault.db.repo.vendor_sessions_repo import VendorSessionsRepo
from dealvault.db.repo.voucher_audit_repo import VoucherAuditRepo
from dealvault.db.repo.vouchers_repo import VouchersRepo

__all__ = [
    "BusinessesRepo",
    "DealsRepo",
    "IdentitiesRepo",
    "RedemptionsRepo",
    "VendorSessionsRepo",
    "VoucherAuditRepo",
    "VouchersRepo",
]
