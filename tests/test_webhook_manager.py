"""
Tests for WebhookHandlerManager.
"""

import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

from conduit.webhooks import (
    WebhookEvent,
    WebhookFailure,
    WebhookHandlerManager,
    compute_signature,
    sign_github_payload,
    sign_slack_payload,
)

SECRET = "shh"
PUSH = json.dumps({"ref": "refs/heads/main", "repository": {"full_name": "acme/api"}})


def github_headers(body: str, secret: str = SECRET) -> dict[str, str]:
    return {
        "X-GitHub-Event": "push",
        "X-Hub-Signature-256": sign_github_payload(body, secret),
        "Content-Type": "application/json",
    }


class TestRegistration:
    def test_register_overwrites(self):
        manager = WebhookHandlerManager()
        manager.register_handler("github", MagicMock())
        manager.register_handler("github", MagicMock())
        assert manager.sources == ["github"]

    def test_unregister(self):
        manager = WebhookHandlerManager()
        manager.register_handler("github", MagicMock())
        assert manager.unregister_handler("github") is True
        assert manager.unregister_handler("github") is False
        assert not manager.has_handler("github")

    def test_remove_secret(self):
        manager = WebhookHandlerManager()
        manager.set_signature_secret("github", SECRET)
        assert manager.remove_signature_secret("github") is True
        assert manager.remove_signature_secret("github") is False


class TestProcessWebhook:
    """Tests for process_webhook."""

    @pytest.mark.asyncio
    async def test_github_push_with_valid_signature(self):
        manager = WebhookHandlerManager()
        handler = AsyncMock(return_value={"queued": True})
        manager.register_handler("github", handler)
        manager.set_signature_secret("github", SECRET)

        result = await manager.process_webhook(PUSH, github_headers(PUSH))

        assert result.success is True
        assert result.source == "github"
        assert result.event == "push"
        assert result.result == {"queued": True}

        event = handler.await_args.args[0]
        assert isinstance(event, WebhookEvent)
        assert event.payload["repository"]["full_name"] == "acme/api"
        assert event.event == "push"

    @pytest.mark.asyncio
    async def test_invalid_json_never_reaches_handler(self):
        manager = WebhookHandlerManager()
        handler = MagicMock()
        manager.register_handler("github", handler)

        result = await manager.process_webhook("{broken", {"x-github-event": "push"})

        assert result.success is False
        assert "Invalid JSON" in result.error
        assert result.failure is WebhookFailure.INVALID_PAYLOAD
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_deeply_nested_json_is_invalid_payload(self):
        manager = WebhookHandlerManager()
        handler = MagicMock()
        manager.register_handler("github", handler)

        result = await manager.process_webhook("[" * 200_000, {"X-GitHub-Event": "push"})

        assert result.success is False
        assert result.failure is WebhookFailure.INVALID_PAYLOAD
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_unencodable_body_fails_signature(self):
        manager = WebhookHandlerManager()
        handler = MagicMock()
        manager.register_handler("github", handler)
        manager.set_signature_secret("github", SECRET)

        result = await manager.process_webhook(
            '{"a": "\ud800"}',
            {"X-GitHub-Event": "push", "X-Hub-Signature-256": "sha256=" + "0" * 64},
        )

        assert result.failure is WebhookFailure.INVALID_SIGNATURE
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_signature(self):
        manager = WebhookHandlerManager()
        handler = MagicMock()
        manager.register_handler("github", handler)
        manager.set_signature_secret("github", SECRET)

        result = await manager.process_webhook(PUSH, github_headers(PUSH, secret="wrong"))

        assert result.success is False
        assert result.failure is WebhookFailure.INVALID_SIGNATURE
        handler.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_signature_header(self):
        manager = WebhookHandlerManager()
        manager.register_handler("github", MagicMock())
        manager.set_signature_secret("github", SECRET)

        result = await manager.process_webhook(PUSH, {"x-github-event": "push"})

        assert result.failure is WebhookFailure.INVALID_SIGNATURE

    @pytest.mark.asyncio
    async def test_no_secret_skips_verification(self):
        manager = WebhookHandlerManager()
        handler = MagicMock(return_value="ok")
        manager.register_handler("github", handler)

        result = await manager.process_webhook(PUSH, {"x-github-event": "push"})

        assert result.success is True
        assert result.result == "ok"
        handler.assert_called_once()

    @pytest.mark.asyncio
    async def test_missing_handler(self):
        manager = WebhookHandlerManager()

        result = await manager.process_webhook(PUSH, {"x-github-event": "push"})

        assert result.success is False
        assert result.failure is WebhookFailure.NO_HANDLER
        assert "github" in result.error

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_failure(self):
        manager = WebhookHandlerManager()
        manager.register_handler("github", AsyncMock(side_effect=RuntimeError("db down")))

        result = await manager.process_webhook(PUSH, {"x-github-event": "push"})

        assert result.success is False
        assert result.error == "db down"
        assert result.failure is WebhookFailure.HANDLER_ERROR

    @pytest.mark.asyncio
    async def test_slack_signature(self):
        manager = WebhookHandlerManager()
        handler = MagicMock(return_value=None)
        manager.register_handler("slack", handler)
        manager.set_signature_secret("slack", SECRET)
        body = json.dumps({"type": "event_callback", "event": {"type": "app_mention"}})
        ts = str(int(time.time()))

        result = await manager.process_webhook(
            body,
            {
                "X-Slack-Signature": sign_slack_payload(body, ts, SECRET),
                "X-Slack-Request-Timestamp": ts,
            },
        )

        assert result.success is True
        assert result.event == "app_mention"

    @pytest.mark.asyncio
    async def test_slack_replay_rejected(self):
        manager = WebhookHandlerManager()
        manager.register_handler("slack", MagicMock())
        manager.set_signature_secret("slack", SECRET)
        body = json.dumps({"type": "event_callback"})
        ts = str(int(time.time()) - 3600)

        result = await manager.process_webhook(
            body,
            {
                "X-Slack-Signature": sign_slack_payload(body, ts, SECRET),
                "X-Slack-Request-Timestamp": ts,
            },
        )

        assert result.failure is WebhookFailure.INVALID_SIGNATURE

    @pytest.mark.asyncio
    async def test_jira_signature_header(self):
        manager = WebhookHandlerManager()
        manager.register_handler("jira", MagicMock())
        manager.set_signature_secret("jira", SECRET)
        body = json.dumps({"webhookEvent": "jira:issue_created"})

        result = await manager.process_webhook(
            body,
            {
                "X-Atlassian-Webhook-Identifier": "42",
                "X-Hub-Signature": "sha256=" + compute_signature(body, SECRET),
            },
        )

        assert result.success is True
        assert result.event == "jira:issue_created"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("with_prefix", [True, False])
    async def test_custom_source_generic_signature(self, with_prefix):
        manager = WebhookHandlerManager()
        manager.register_handler("billing", MagicMock())
        manager.set_signature_secret("billing", SECRET)
        body = json.dumps({"event": "invoice.paid"})
        signature = compute_signature(body, SECRET)
        if with_prefix:
            signature = "sha256=" + signature

        result = await manager.process_webhook(
            body,
            {"X-Webhook-Source": "billing", "X-Webhook-Signature": signature},
        )

        assert result.success is True
        assert result.event == "invoice.paid"

    @pytest.mark.asyncio
    async def test_raw_bytes_verified_as_received(self):
        manager = WebhookHandlerManager()
        manager.register_handler("github", MagicMock())
        manager.set_signature_secret("github", SECRET)
        body = b'{"ref":  "refs/heads/main"}'  # unusual spacing must not be normalized

        result = await manager.process_webhook(
            body,
            {"X-GitHub-Event": "push", "X-Hub-Signature-256": sign_github_payload(body, SECRET)},
        )

        assert result.success is True

    def test_result_to_dict(self):
        from conduit.webhooks import WebhookResult

        data = WebhookResult(
            success=False,
            source="github",
            event="push",
            error="x",
            failure=WebhookFailure.NO_HANDLER,
        ).to_dict()
        assert data == {
            "success": False,
            "source": "github",
            "event": "push",
            "error": "x",
            "failure": "no_handler",
        }
