"""
Conduit Webhooks Layer.

Inbound webhook verification and routing:
- signatures: HMAC verifiers with per-provider framing (GitHub, Slack, Jira)
- parser: Header normalization, source detection, event extraction
- manager: Per-source handlers and secrets, verify-then-dispatch

Usage:
    from conduit.webhooks import WebhookHandlerManager

    manager = WebhookHandlerManager()
    manager.register_handler("github", handle_github)
    result = await manager.process_webhook(body, headers)
"""

from conduit.webhooks.manager import (
    WebhookEvent,
    WebhookFailure,
    WebhookHandler,
    WebhookHandlerManager,
    WebhookResult,
)
from conduit.webhooks.parser import (
    ParsedWebhook,
    detect_source,
    extract_event_type,
    extract_timestamp,
    normalize_headers,
    parse_webhook,
)
from conduit.webhooks.signatures import (
    SignatureResult,
    compute_signature,
    sign_github_payload,
    sign_slack_payload,
    timing_safe_equal,
    verify_github_signature,
    verify_jira_signature,
    verify_signature,
    verify_slack_signature,
)

__all__ = [
    # Manager
    "WebhookEvent",
    "WebhookFailure",
    "WebhookHandler",
    "WebhookHandlerManager",
    "WebhookResult",
    # Parser
    "ParsedWebhook",
    "detect_source",
    "extract_event_type",
    "extract_timestamp",
    "normalize_headers",
    "parse_webhook",
    # Signatures
    "SignatureResult",
    "compute_signature",
    "sign_github_payload",
    "sign_slack_payload",
    "timing_safe_equal",
    "verify_github_signature",
    "verify_jira_signature",
    "verify_signature",
    "verify_slack_signature",
]
