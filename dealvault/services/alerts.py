from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from dealvault.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

ALERT_SOURCE = "deal-vault"
DEFAULT_PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"
ALERT_CHANNELS = ("generic", "slack", "pagerduty")
ALERT_SEVERITIES = ("critical", "error", "warning", "info")
SLACK_SEVERITY_COLOR = {
    "critical": "#B42318",
    "error": "#F04438",
    "warning": "#F79009",
    "info": "#1570EF",
}
ALERT_HTTP_TIMEOUT_SECONDS = 5.0


@dataclass(frozen=True, slots=True)
class AlertRoute:
    channels: tuple[str, ...]
    severity: str
    escalation_tier: str


@dataclass(frozen=True, slots=True)
class AlertContext:
    event: str
    payload: dict[str, object]
    route: AlertRoute
    sent_at: datetime
    app_env: str
    pagerduty_routing_key: str


DEFAULT_ALERT_ROUTE = AlertRoute(channels=("generic",), severity="warning", escalation_tier="ops_l3")
EVENT_ALERT_ROUTES: dict[str, AlertRoute] = {
    "voucher_redemption_integrity_violation": AlertRoute(
        channels=("pagerduty", "slack", "generic"),
        severity="critical",
        escalation_tier="ops_l1",
    ),
}


def _load_policy_overrides(raw_policy: str) -> dict[str, dict[str, object]]:
    if not raw_policy.strip():
        return {}
    try:
        parsed = json.loads(raw_policy)
    except json.JSONDecodeError:
        logger.warning("ops_alert_policy_parse_failed")
        return {}
    if not isinstance(parsed, dict):
        logger.warning("ops_alert_policy_invalid_shape")
        return {}
    return {
        str(event_name): route
        for event_name, route in parsed.items()
        if isinstance(route, dict)
    }


def resolve_alert_route(event: str, *, policy_raw: str = "") -> AlertRoute:
    base = EVENT_ALERT_ROUTES.get(event, DEFAULT_ALERT_ROUTE)
    overrides = _load_policy_overrides(policy_raw)
    override = overrides.get(event) or overrides.get("*")
    if not override:
        return base

    raw_channels = override.get("channels")
    channels = base.channels
    if isinstance(raw_channels, list):
        picked = tuple(
            dict.fromkeys(
                channel.strip().lower()
                for channel in raw_channels
                if isinstance(channel, str) and channel.strip().lower() in ALERT_CHANNELS
            )
        )
        channels = picked or base.channels

    raw_severity = override.get("severity")
    severity = base.severity
    if isinstance(raw_severity, str) and raw_severity.strip().lower() in ALERT_SEVERITIES:
        severity = raw_severity.strip().lower()

    raw_tier = override.get("escalation_tier")
    tier = raw_tier.strip() if isinstance(raw_tier, str) and raw_tier.strip() else base.escalation_tier
    return AlertRoute(channels=channels, severity=severity, escalation_tier=tier)


def _channel_urls(settings: Settings) -> dict[str, str]:
    urls = {
        "generic": settings.ops_alert_webhook_url.strip(),
        "slack": settings.ops_alert_slack_webhook_url.strip(),
    }
    if settings.ops_alert_pagerduty_routing_key.strip():
        urls["pagerduty"] = (
            settings.ops_alert_pagerduty_events_url.strip() or DEFAULT_PAGERDUTY_EVENTS_URL
        )
    return urls


def resolve_alert_targets(route: AlertRoute, settings: Settings) -> list[tuple[str, str]]:
    urls = _channel_urls(settings)
    targets = [(channel, urls[channel]) for channel in route.channels if urls.get(channel)]
    if not targets and urls["generic"]:
        targets.append(("generic", urls["generic"]))
    return targets


def _compact_json(payload: dict[str, object]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)


def _generic_body(ctx: AlertContext) -> dict[str, Any]:
    return {
        "event": ctx.event,
        "payload": ctx.payload,
        "sent_at": ctx.sent_at.isoformat(),
        "severity": ctx.route.severity,
        "escalation_tier": ctx.route.escalation_tier,
        "source": ALERT_SOURCE,
    }


def _slack_body(ctx: AlertContext) -> dict[str, Any]:
    return {
        "text": f"[{ctx.route.severity.upper()}][{ctx.route.escalation_tier}] {ctx.event}",
        "attachments": [
            {
                "color": SLACK_SEVERITY_COLOR.get(ctx.route.severity, SLACK_SEVERITY_COLOR["warning"]),
                "fields": [
                    {"title": "Environment", "value": ctx.app_env, "short": True},
                    {"title": "Sent At", "value": ctx.sent_at.isoformat(), "short": True},
                    {"title": "Payload", "value": _compact_json(ctx.payload), "short": False},
                ],
            }
        ],
    }


def _pagerduty_body(ctx: AlertContext) -> dict[str, Any]:
    return {
        "routing_key": ctx.pagerduty_routing_key,
        "event_action": "trigger",
        "dedup_key": f"{ALERT_SOURCE}:{ctx.event}",
        "payload": {
            "summary": f"[{ctx.app_env}] {ctx.event}",
            "source": f"{ALERT_SOURCE}/{ctx.app_env}",
            "severity": ctx.route.severity,
            "timestamp": ctx.sent_at.isoformat(),
            "component": "voucher-core",
            "group": ctx.route.escalation_tier,
            "custom_details": ctx.payload,
        },
    }


CHANNEL_BODY_BUILDERS: dict[str, Callable[[AlertContext], dict[str, Any]]] = {
    "generic": _generic_body,
    "slack": _slack_body,
    "pagerduty": _pagerduty_body,
}


async def send_ops_alert(*, event: str, payload: dict[str, object]) -> bool:
    settings = get_settings()
    route = resolve_alert_route(event, policy_raw=settings.ops_alert_escalation_policy_json)
    targets = resolve_alert_targets(route, settings)
    if not targets:
        logger.warning("ops_alert_no_targets", alert_event=event)
        return False

    ctx = AlertContext(
        event=event,
        payload=payload,
        route=route,
        sent_at=datetime.now(timezone.utc),
        app_env=settings.app_env or "dev",
        pagerduty_routing_key=settings.ops_alert_pagerduty_routing_key.strip(),
    )
    delivered_to: list[str] = []
    failed_to: list[str] = []
    async with httpx.AsyncClient(timeout=ALERT_HTTP_TIMEOUT_SECONDS) as client:
        for channel, url in targets:
            try:
                response = await client.post(url, json=CHANNEL_BODY_BUILDERS[channel](ctx))
                response.raise_for_status()
            except httpx.HTTPError:
                logger.exception("ops_alert_delivery_failed", alert_event=event, provider=channel)
                failed_to.append(channel)
            else:
                delivered_to.append(channel)

    if not delivered_to:
        logger.error(
            "ops_alert_delivery_exhausted",
            alert_event=event,
            severity=route.severity,
            failed_to=failed_to,
        )
        return False

    logger.info(
        "ops_alert_delivered",
        alert_event=event,
        severity=route.severity,
        escalation_tier=route.escalation_tier,
        delivered_to=delivered_to,
        failed_to=failed_to,
    )
    return True
