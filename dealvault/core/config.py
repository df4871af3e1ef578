from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")

    celery_broker_url: str = Field(alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(alias="CELERY_RESULT_BACKEND")

    identity_jwt_secret: str = Field(alias="IDENTITY_JWT_SECRET")
    identity_jwt_ttl_hours: int = Field(default=24, alias="IDENTITY_JWT_TTL_HOURS")

    vendor_session_pepper: str = Field(
        default="dev_vendor_session_pepper_change_me",
        alias="VENDOR_SESSION_PEPPER",
    )
    vendor_session_default_hours: int = Field(default=10, alias="VENDOR_SESSION_DEFAULT_HOURS")

    voucher_default_expiration_hours: int = Field(
        default=720,
        alias="VOUCHER_DEFAULT_EXPIRATION_HOURS",
    )
    voucher_max_expiration_hours: int = Field(default=2160, alias="VOUCHER_MAX_EXPIRATION_HOURS")
    voucher_tx_lock_timeout_ms: int = Field(default=5000, alias="VOUCHER_TX_LOCK_TIMEOUT_MS")
    voucher_tx_statement_timeout_ms: int = Field(
        default=15000,
        alias="VOUCHER_TX_STATEMENT_TIMEOUT_MS",
    )
    voucher_issue_max_attempts: int = Field(default=3, alias="VOUCHER_ISSUE_MAX_ATTEMPTS")
    voucher_redeem_max_attempts: int = Field(default=3, alias="VOUCHER_REDEEM_MAX_ATTEMPTS")

    issue_rate_limit_per_minute: int = Field(default=10, alias="ISSUE_RATE_LIMIT_PER_MINUTE")

    ops_alert_webhook_url: str = Field(default="", alias="OPS_ALERT_WEBHOOK_URL")
    ops_alert_slack_webhook_url: str = Field(default="", alias="OPS_ALERT_SLACK_WEBHOOK_URL")
    ops_alert_pagerduty_events_url: str = Field(default="", alias="OPS_ALERT_PAGERDUTY_EVENTS_URL")
    ops_alert_pagerduty_routing_key: str = Field(
        default="",
        alias="OPS_ALERT_PAGERDUTY_ROUTING_KEY",
    )
    ops_alert_escalation_policy_json: str = Field(
        default="",
        alias="OPS_ALERT_ESCALATION_POLICY_JSON",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
