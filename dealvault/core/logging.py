import logging
import sys

import structlog

QUIET_LOGGERS = ("sqlalchemy.engine", "asyncpg", "httpx", "celery.beat")


def configure_logging(log_level: str = "INFO") -> None:
    level = getattr(logging, log_level.upper(), logging.INFO)
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )
    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def bind_operation_context(**context: object) -> None:
    """Attach ids (voucher, business, actor) to every log line of the current task."""
    structlog.contextvars.bind_contextvars(
        **{key: str(value) for key, value in context.items() if value is not None}
    )


def clear_operation_context() -> None:
    structlog.contextvars.clear_contextvars()
