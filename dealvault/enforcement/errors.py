from __future__ import annotations

from dealvault.core.results import Failure, FailureCode, fail


class VoucherRejectedError(Exception):
    """Raised inside an engine transaction to roll it back with a domain failure."""

    def __init__(self, code: FailureCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def as_failure(self) -> Failure:
        return fail(self.code, self.message)
