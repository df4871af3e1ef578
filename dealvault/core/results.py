"""Structured outcomes shared by the guards and the voucher engines.

Guards and engines never let a domain failure escape as an exception. They
return ``Ok`` or ``Failure``; the HTTP layer turns a ``Failure`` into a
response using ``FAILURE_HTTP_STATUS``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class FailureCode(str, Enum):
    # authentication
    UNAUTHENTICATED = "UNAUTHENTICATED"
    INVALID_SESSION = "INVALID_SESSION"
    # authorization
    SUSPENDED = "SUSPENDED"
    FORBIDDEN = "FORBIDDEN"
    VENDOR_NOT_OWNER = "VENDOR_NOT_OWNER"
    LOCATION_UNAUTHORIZED = "LOCATION_UNAUTHORIZED"
    SUBSCRIPTION_INACTIVE = "SUBSCRIPTION_INACTIVE"
    RATE_LIMITED = "RATE_LIMITED"
    # state conflicts
    NOT_FOUND = "NOT_FOUND"
    BUSINESS_NOT_ACTIVE = "BUSINESS_NOT_ACTIVE"
    DEAL_NOT_FOUND = "DEAL_NOT_FOUND"
    DEAL_NOT_ACTIVE = "DEAL_NOT_ACTIVE"
    EXPIRATION_POLICY_INVALID = "EXPIRATION_POLICY_INVALID"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    VOUCHER_NOT_FOUND = "VOUCHER_NOT_FOUND"
    VOUCHER_ALREADY_REDEEMED = "VOUCHER_ALREADY_REDEEMED"
    VOUCHER_EXPIRED = "VOUCHER_EXPIRED"
    VOUCHER_NOT_ISSUED = "VOUCHER_NOT_ISSUED"
    ALREADY_BOUND = "ALREADY_BOUND"
    EXTERNAL_REF_CONFLICT = "EXTERNAL_REF_CONFLICT"
    # validation
    INVALID_INPUT = "INVALID_INPUT"
    # concurrency
    SERIALIZATION_CONFLICT = "SERIALIZATION_CONFLICT"
    TRANSACTION_TIMEOUT = "TRANSACTION_TIMEOUT"
    # system
    INTERNAL = "INTERNAL"


FAILURE_HTTP_STATUS: dict[FailureCode, int] = {
    FailureCode.UNAUTHENTICATED: 401,
    FailureCode.INVALID_SESSION: 401,
    FailureCode.SUSPENDED: 403,
    FailureCode.FORBIDDEN: 403,
    FailureCode.VENDOR_NOT_OWNER: 403,
    FailureCode.LOCATION_UNAUTHORIZED: 403,
    FailureCode.SUBSCRIPTION_INACTIVE: 403,
    FailureCode.RATE_LIMITED: 429,
    FailureCode.NOT_FOUND: 404,
    FailureCode.BUSINESS_NOT_ACTIVE: 403,
    FailureCode.DEAL_NOT_FOUND: 404,
    FailureCode.DEAL_NOT_ACTIVE: 409,
    FailureCode.EXPIRATION_POLICY_INVALID: 409,
    FailureCode.FOREIGN_KEY_VIOLATION: 409,
    FailureCode.VOUCHER_NOT_FOUND: 404,
    FailureCode.VOUCHER_ALREADY_REDEEMED: 409,
    FailureCode.VOUCHER_EXPIRED: 410,
    FailureCode.VOUCHER_NOT_ISSUED: 409,
    FailureCode.ALREADY_BOUND: 409,
    FailureCode.EXTERNAL_REF_CONFLICT: 409,
    FailureCode.INVALID_INPUT: 400,
    FailureCode.SERIALIZATION_CONFLICT: 409,
    FailureCode.TRANSACTION_TIMEOUT: 503,
    FailureCode.INTERNAL: 500,
}

RETRYABLE_FAILURES = frozenset(
    {FailureCode.SERIALIZATION_CONFLICT, FailureCode.TRANSACTION_TIMEOUT}
)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T
    ok: bool = True


@dataclass(frozen=True, slots=True)
class Failure:
    code: FailureCode
    message: str
    ok: bool = False

    @property
    def status_code(self) -> int:
        return FAILURE_HTTP_STATUS[self.code]

    @property
    def retryable(self) -> bool:
        return self.code in RETRYABLE_FAILURES


Result = Ok[T] | Failure


def fail(code: FailureCode, message: str) -> Failure:
    return Failure(code=code, message=message)
