"""Classification of PostgreSQL errors raised inside voucher transactions.

Constraint violations are expected control flow for the engines: a unique
violation on ``uq_voucher_validations_external_ref`` is how a duplicate
issuance is detected. This module maps driver errors onto a small closed set.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import DBAPIError

SQLSTATE_UNIQUE_VIOLATION = "23505"
SQLSTATE_FOREIGN_KEY_VIOLATION = "23503"
SQLSTATE_CHECK_VIOLATION = "23514"
SQLSTATE_SERIALIZATION_FAILURE = "40001"
SQLSTATE_DEADLOCK_DETECTED = "40P01"
SQLSTATE_LOCK_NOT_AVAILABLE = "55P03"
SQLSTATE_QUERY_CANCELED = "57014"
SQLSTATE_RAISE_EXCEPTION = "P0001"


class DbErrorKind(str, Enum):
    UNIQUE_VIOLATION = "UNIQUE_VIOLATION"
    FOREIGN_KEY_VIOLATION = "FOREIGN_KEY_VIOLATION"
    CHECK_VIOLATION = "CHECK_VIOLATION"
    SERIALIZATION_FAILURE = "SERIALIZATION_FAILURE"
    TIMEOUT = "TIMEOUT"
    TRIGGER_REJECTED = "TRIGGER_REJECTED"
    OTHER = "OTHER"


_KIND_BY_SQLSTATE = {
    SQLSTATE_UNIQUE_VIOLATION: DbErrorKind.UNIQUE_VIOLATION,
    SQLSTATE_FOREIGN_KEY_VIOLATION: DbErrorKind.FOREIGN_KEY_VIOLATION,
    SQLSTATE_CHECK_VIOLATION: DbErrorKind.CHECK_VIOLATION,
    SQLSTATE_SERIALIZATION_FAILURE: DbErrorKind.SERIALIZATION_FAILURE,
    SQLSTATE_DEADLOCK_DETECTED: DbErrorKind.SERIALIZATION_FAILURE,
    SQLSTATE_LOCK_NOT_AVAILABLE: DbErrorKind.TIMEOUT,
    SQLSTATE_QUERY_CANCELED: DbErrorKind.TIMEOUT,
    SQLSTATE_RAISE_EXCEPTION: DbErrorKind.TRIGGER_REJECTED,
}


@dataclass(frozen=True, slots=True)
class DbErrorInfo:
    kind: DbErrorKind
    sqlstate: str | None
    constraint_name: str | None

    def violates(self, constraint_name: str) -> bool:
        return self.kind is DbErrorKind.UNIQUE_VIOLATION and self.constraint_name == constraint_name


def _error_chain(exc: BaseException) -> list[BaseException]:
    chain: list[BaseException] = []
    current: BaseException | None = exc
    while current is not None and current not in chain:
        chain.append(current)
        # DBAPIError keeps the driver exception on .orig
        current = getattr(current, "orig", None) or current.__cause__ or current.__context__
    return chain


def _extract_sqlstate(chain: list[BaseException]) -> str | None:
    for candidate in chain:
        for attr in ("sqlstate", "pgcode"):
            value = getattr(candidate, attr, None)
            if isinstance(value, str) and value:
                return value
    return None


def _extract_constraint_name(chain: list[BaseException], known: tuple[str, ...]) -> str | None:
    for candidate in chain:
        value = getattr(candidate, "constraint_name", None)
        if isinstance(value, str) and value:
            return value
    message = " ".join(str(candidate) for candidate in chain)
    for name in known:
        if name in message:
            return name
    return None


def classify_db_error(exc: BaseException, *, known_constraints: tuple[str, ...] = ()) -> DbErrorInfo:
    chain = _error_chain(exc)
    sqlstate = _extract_sqlstate(chain)
    kind = _KIND_BY_SQLSTATE.get(sqlstate or "", DbErrorKind.OTHER)
    constraint_name = None
    if kind in (DbErrorKind.UNIQUE_VIOLATION, DbErrorKind.FOREIGN_KEY_VIOLATION, DbErrorKind.CHECK_VIOLATION):
        constraint_name = _extract_constraint_name(chain, known_constraints)
    return DbErrorInfo(kind=kind, sqlstate=sqlstate, constraint_name=constraint_name)


def is_database_error(exc: BaseException) -> bool:
    return isinstance(exc, DBAPIError)
