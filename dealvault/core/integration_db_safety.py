from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_MARKER = "test"
ALLOWED_LOCAL_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "dealvault_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbTarget:
    backend: str
    database_name: str
    host: str


@dataclass(frozen=True, slots=True)
class IntegrationDbVerdict:
    is_safe: bool
    reason: str
    target: IntegrationDbTarget


def describe_target(database_url: str) -> IntegrationDbTarget:
    parsed = make_url(database_url)
    return IntegrationDbTarget(
        backend=parsed.get_backend_name(),
        database_name=(parsed.database or "").strip(),
        host=(parsed.host or "").strip().lower(),
    )


def _first_violation(target: IntegrationDbTarget) -> str | None:
    if target.backend != "postgresql":
        return "Voucher integration tests need PostgreSQL (serializable isolation, triggers)."
    if not target.database_name:
        return "Database name is empty."
    if TEST_DB_MARKER not in target.database_name.lower():
        return f"Database name must contain '{TEST_DB_MARKER}'."
    if target.host not in ALLOWED_LOCAL_HOSTS:
        return f"Host '{target.host}' is not a local integration-test host."
    return None


def assess_integration_db_safety(database_url: str) -> IntegrationDbVerdict:
    target = describe_target(database_url)
    violation = _first_violation(target)
    return IntegrationDbVerdict(
        is_safe=violation is None,
        reason=violation or "ok",
        target=target,
    )


def assert_safe_integration_db(database_url: str) -> None:
    verdict = assess_integration_db_safety(database_url)
    if verdict.is_safe:
        return

    raise RuntimeError(
        "Refusing to run integration tests that drop and truncate voucher tables.\n"
        f"Reason: {verdict.reason}\n"
        f"Resolved DB: name='{verdict.target.database_name}' host='{verdict.target.host}'\n"
        "Use a dedicated local PostgreSQL database such as 'dealvault_test'."
    )
