"""
Configuration Schemas for Conduit.

Security:
    Secrets use SecretStr to prevent accidental logging of credentials.
    Access the value with `.get_secret_value()`.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr

from conduit.connectors.types import RateLimitConfig, RetryConfig


class AppSettings(BaseModel):
    """
    Application settings model.

    Built from CONDUIT_* environment variables by
    `conduit.app.dependencies.get_settings()`.
    """

    # Service identity
    service_name: str = "conduit"
    environment: str = "development"
    debug: bool = False
    log_level: str = Field(default="INFO", description="Root log level for the app entry point")

    # Credential vault
    credential_key: SecretStr = Field(
        default=SecretStr(""),
        description="AES-256-GCM key material for credentials at rest (32+ bytes)",
    )

    # Webhook secrets (verification is skipped for sources without one)
    github_webhook_secret: SecretStr | None = None
    slack_signing_secret: SecretStr | None = None
    jira_webhook_secret: SecretStr | None = None
    generic_webhook_secret: SecretStr | None = Field(
        default=None,
        description="Shared secret for x-webhook-source senders",
    )
    generic_webhook_sources: list[str] = Field(
        default_factory=list,
        description="Custom sources verified with generic_webhook_secret",
    )

    # Connector defaults
    rate_limit_max_requests: int = Field(100, ge=1)
    rate_limit_window_ms: int = Field(60_000, ge=1)
    retry_max_attempts: int = Field(3, ge=0)
    retry_initial_delay_ms: int = Field(1000, ge=0)
    retry_max_delay_ms: int = Field(30_000, ge=0)
    retry_backoff_multiplier: float = Field(2.0, ge=1.0)
    retry_jitter_factor: float = Field(0.1, ge=0.0)

    # Health monitoring
    health_check_interval: float = Field(60.0, gt=0, description="Seconds between health checks")
    health_max_failures: int = Field(3, ge=1, description="Consecutive failures before auto-disable")

    def rate_limit_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests=self.rate_limit_max_requests,
            window_ms=self.rate_limit_window_ms,
        )

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_max_attempts,
            initial_delay_ms=self.retry_initial_delay_ms,
            max_delay_ms=self.retry_max_delay_ms,
            backoff_multiplier=self.retry_backoff_multiplier,
            jitter_factor=self.retry_jitter_factor,
        )

    def webhook_secrets(self) -> dict[str, str]:
        """Source -> secret for every configured webhook secret."""
        secrets: dict[str, str] = {}
        for source, secret in (
            ("github", self.github_webhook_secret),
            ("slack", self.slack_signing_secret),
            ("jira", self.jira_webhook_secret),
        ):
            if secret is not None and secret.get_secret_value():
                secrets[source] = secret.get_secret_value()

        if self.generic_webhook_secret is not None and self.generic_webhook_secret.get_secret_value():
            for source in self.generic_webhook_sources:
                secrets[source] = self.generic_webhook_secret.get_secret_value()
        return secrets
