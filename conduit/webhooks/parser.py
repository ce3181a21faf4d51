"""
Webhook parsing: header normalization, source detection and event extraction.

Source detection checks header fingerprints in priority order:
    x-github-event                  -> github
    x-slack-signature               -> slack
    x-atlassian-webhook-identifier  -> jira
    x-webhook-source                -> value as given
    (none)                          -> unknown
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

# (header, source) in priority order
_SOURCE_FINGERPRINTS: tuple[tuple[str, str], ...] = (
    ("x-github-event", "github"),
    ("x-slack-signature", "slack"),
    ("x-atlassian-webhook-identifier", "jira"),
)


@dataclass
class ParsedWebhook:
    source: str
    event: str
    timestamp: str
    payload: dict[str, Any]
    headers: dict[str, str]
    is_valid: bool = True
    validation_error: str | None = None
    raw_body: str = field(default="", repr=False)


def normalize_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(name).lower(): value for name, value in headers.items()}


def detect_source(headers: Mapping[str, str]) -> str:
    """Expects normalized (lowercase) header names."""
    for header, source in _SOURCE_FINGERPRINTS:
        if header in headers:
            return source
    custom = headers.get("x-webhook-source")
    return custom if custom else UNKNOWN


def extract_event_type(source: str, payload: Mapping[str, Any], headers: Mapping[str, str]) -> str:
    if source == "github":
        return headers.get("x-github-event") or UNKNOWN

    if source == "slack":
        event = payload.get("event")
        if isinstance(event, Mapping) and event.get("type"):
            return str(event["type"])
        return str(payload.get("type") or UNKNOWN)

    if source == "jira":
        return str(payload.get("webhookEvent") or UNKNOWN)

    if source != UNKNOWN:
        return str(
            headers.get("x-webhook-event")
            or payload.get("event")
            or payload.get("type")
            or UNKNOWN
        )

    return UNKNOWN


def extract_timestamp(headers: Mapping[str, str]) -> str:
    """Slack request timestamp when present and numeric, otherwise now (UTC ISO 8601)."""
    slack_ts = headers.get("x-slack-request-timestamp")
    if slack_ts:
        try:
            return datetime.fromtimestamp(int(slack_ts), UTC).isoformat()
        except (ValueError, OverflowError, OSError):
            logger.debug(f"Ignoring unparseable Slack timestamp: {slack_ts!r}")
    return datetime.now(UTC).isoformat()


def decode_body(raw_body: str | bytes) -> str:
    return raw_body.decode("utf-8") if isinstance(raw_body, bytes) else raw_body


def parse_webhook(raw_body: str | bytes, headers: Mapping[str, str]) -> ParsedWebhook:
    """
    Parse an inbound webhook into a ParsedWebhook.

    Never raises: malformed bodies yield is_valid=False with a
    validation_error.
    """
    normalized = normalize_headers(headers)
    source = detect_source(normalized)
    timestamp = extract_timestamp(normalized)

    def invalid(error: str, body: str = "") -> ParsedWebhook:
        return ParsedWebhook(
            source=source,
            event=UNKNOWN,
            timestamp=timestamp,
            payload={},
            headers=normalized,
            is_valid=False,
            validation_error=error,
            raw_body=body,
        )

    try:
        body = decode_body(raw_body)
    except UnicodeDecodeError:
        return invalid("Invalid JSON payload")

    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, RecursionError):
        return invalid("Invalid JSON payload", body)

    if not isinstance(payload, dict):
        return invalid("Invalid JSON payload: expected an object", body)

    return ParsedWebhook(
        source=source,
        event=extract_event_type(source, payload, normalized),
        timestamp=timestamp,
        payload=payload,
        headers=normalized,
        raw_body=body,
    )


__all__ = [
    "UNKNOWN",
    "ParsedWebhook",
    "decode_body",
    "detect_source",
    "extract_event_type",
    "extract_timestamp",
    "normalize_headers",
    "parse_webhook",
]
