"""
Webhook handler manager.

Receives a raw body and header map, then:
1. Normalizes header names
2. Detects the source
3. Parses the JSON body (malformed bodies never reach a handler)
4. Verifies the signature, only when a secret is registered for the source
5. Looks up the handler for the source
6. Invokes it with a WebhookEvent envelope

Every failure is terminal for the request and reported in the returned
WebhookResult; retrying delivery is the sender's job.

Usage:
    manager = WebhookHandlerManager()
    manager.set_signature_secret("github", settings.github_webhook_secret)
    manager.register_handler("github", on_github_event)

    result = await manager.process_webhook(body, request.headers)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .parser import normalize_headers, parse_webhook
from .signatures import (
    SignatureResult,
    verify_github_signature,
    verify_jira_signature,
    verify_signature,
    verify_slack_signature,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================


class WebhookFailure(str, Enum):
    """Why a webhook was rejected."""

    INVALID_PAYLOAD = "invalid_payload"
    INVALID_SIGNATURE = "invalid_signature"
    NO_HANDLER = "no_handler"
    HANDLER_ERROR = "handler_error"


@dataclass(frozen=True, slots=True)
class WebhookEvent:
    """Envelope handed to handlers."""

    source: str
    event: str
    timestamp: str
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class WebhookResult:
    success: bool
    source: str
    event: str
    error: str | None = None
    result: Any = None
    failure: WebhookFailure | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "source": self.source,
            "event": self.event,
        }
        if self.error is not None:
            data["error"] = self.error
        if self.failure is not None:
            data["failure"] = self.failure.value
        if self.result is not None:
            data["result"] = self.result
        return data


WebhookHandler = Callable[[WebhookEvent], Any]


# =============================================================================
# Manager
# =============================================================================


class WebhookHandlerManager:
    """
    Per-source handler and secret registry.

    Registration maps are plain dicts mutated from the event loop thread;
    processing only reads them.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, WebhookHandler] = {}
        self._secrets: dict[str, str] = {}

    def register_handler(self, source: str, handler: WebhookHandler) -> None:
        """Register (or replace) the handler for a source."""
        self._handlers[source] = handler
        logger.debug(f"Registered webhook handler for {source}")

    def unregister_handler(self, source: str) -> bool:
        return self._handlers.pop(source, None) is not None

    def has_handler(self, source: str) -> bool:
        return source in self._handlers

    def set_signature_secret(self, source: str, secret: str) -> None:
        """Require signature verification for a source."""
        self._secrets[source] = secret

    def remove_signature_secret(self, source: str) -> bool:
        return self._secrets.pop(source, None) is not None

    @property
    def sources(self) -> list[str]:
        return sorted(self._handlers)

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process_webhook(
        self,
        raw_payload: str | bytes,
        headers: Mapping[str, str],
    ) -> WebhookResult:
        """Verify and dispatch one inbound webhook. Never raises."""
        normalized = normalize_headers(headers)
        parsed = parse_webhook(raw_payload, normalized)
        source, event = parsed.source, parsed.event

        if not parsed.is_valid:
            logger.info(f"[{source}] Rejected webhook: {parsed.validation_error}")
            return WebhookResult(
                success=False,
                source=source,
                event=event,
                error=parsed.validation_error,
                failure=WebhookFailure.INVALID_PAYLOAD,
            )

        secret = self._secrets.get(source)
        if secret is not None:
            verification = self._verify(source, raw_payload, normalized, secret)
            if not verification.valid:
                logger.warning(f"[{source}] Signature verification failed: {verification.error}")
                return WebhookResult(
                    success=False,
                    source=source,
                    event=event,
                    error=f"Invalid signature: {verification.error}",
                    failure=WebhookFailure.INVALID_SIGNATURE,
                )

        handler = self._handlers.get(source)
        if handler is None:
            logger.info(f"[{source}] No handler registered for event {event}")
            return WebhookResult(
                success=False,
                source=source,
                event=event,
                error=f"No handler registered for source: {source}",
                failure=WebhookFailure.NO_HANDLER,
            )

        envelope = WebhookEvent(
            source=source,
            event=event,
            timestamp=parsed.timestamp,
            payload=parsed.payload,
        )

        try:
            outcome = handler(envelope)
            if inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception as e:
            logger.error(f"[{source}] Handler failed for event {event}: {e}", exc_info=True)
            return WebhookResult(
                success=False,
                source=source,
                event=event,
                error=str(e) or type(e).__name__,
                failure=WebhookFailure.HANDLER_ERROR,
            )

        logger.debug(f"[{source}] Handled event {event}")
        return WebhookResult(success=True, source=source, event=event, result=outcome)

    @staticmethod
    def _verify(
        source: str,
        raw_payload: str | bytes,
        headers: Mapping[str, str],
        secret: str,
    ) -> SignatureResult:
        if source == "github":
            return verify_github_signature(raw_payload, headers.get("x-hub-signature-256"), secret)
        if source == "slack":
            return verify_slack_signature(
                raw_payload,
                headers.get("x-slack-signature"),
                headers.get("x-slack-request-timestamp"),
                secret,
            )
        if source == "jira":
            return verify_jira_signature(raw_payload, headers.get("x-hub-signature"), secret)

        signature = headers.get("x-webhook-signature")
        prefix = "sha256=" if signature and signature.startswith("sha256=") else ""
        return verify_signature(raw_payload, signature, secret=secret, prefix=prefix)


__all__ = [
    "WebhookEvent",
    "WebhookFailure",
    "WebhookHandler",
    "WebhookHandlerManager",
    "WebhookResult",
]
