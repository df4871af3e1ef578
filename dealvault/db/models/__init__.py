from dealvault.db.models.base import Base
from dealvault.db.models.business_subscriptions import BusinessSubscription
from dealvault.db.models.businesses import Business
from dealvault.db.models.deals import Deal
from dealvault.db.models.redemptions import Redemption
from dealvault.db.models.user_identities import UserIdentity
from dealvault.db.models.vendor_ownerships import VendorOwnership
from dealvault.db.models.vendor_sessions import VendorSession
from dealvault.db.models.voucher_audit_logs import VoucherAuditLog
from dealvault.db.models.voucher_validations import VoucherValidation
from dealvault.db.models.vouchers import Voucher

__all__ = [
    "Base",
    "Business",
    "BusinessSubscription",
    "Deal",
    "Redemption",
    "UserIdentity",
    "VendorOwnership",
    "VendorSession",
    "Voucher",
    "VoucherAuditLog",
    "VoucherValidation",
]
