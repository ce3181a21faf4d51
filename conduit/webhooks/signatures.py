"""
HMAC signature verification for inbound webhooks.

Framing per provider:
    github  X-Hub-Signature-256: "sha256=" + hex(HMAC-SHA256(secret, body))
    slack   X-Slack-Signature:   "v0=" + hex(HMAC-SHA256(secret, "v0:{ts}:{body}"))
            with X-Slack-Request-Timestamp no more than 300s from now
    jira    X-Hub-Signature:     "sha256=" + hex(HMAC-SHA256(secret, body))

All comparisons run in constant time over equal-length inputs. Verifiers
return SignatureResult and never raise.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from dataclasses import dataclass

SLACK_MAX_SKEW_SECONDS = 300

SUPPORTED_ALGORITHMS = frozenset({"sha1", "sha256", "sha512"})


@dataclass(frozen=True, slots=True)
class SignatureResult:
    valid: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.valid


def _as_bytes(value: str | bytes) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def compute_signature(
    payload: str | bytes,
    secret: str | bytes,
    algorithm: str = "sha256",
) -> str:
    """Hex HMAC digest of `payload` keyed with `secret`."""
    if algorithm not in SUPPORTED_ALGORITHMS:
        raise ValueError(f"Unsupported HMAC algorithm: {algorithm}")
    return hmac.new(_as_bytes(secret), _as_bytes(payload), getattr(hashlib, algorithm)).hexdigest()


def timing_safe_equal(a: str | bytes, b: str | bytes) -> bool:
    """Length check, then constant-time comparison."""
    left, right = _as_bytes(a), _as_bytes(b)
    if len(left) != len(right):
        return False
    return hmac.compare_digest(left, right)


def verify_signature(
    payload: str | bytes,
    signature: str | None,
    *,
    secret: str | bytes,
    algorithm: str = "sha256",
    prefix: str = "",
) -> SignatureResult:
    """
    Verify `signature` against the HMAC of the raw payload.

    Args:
        payload: Raw request body, exactly as received
        signature: Header value, including any scheme prefix
        secret: Shared secret
        algorithm: sha1, sha256 or sha512
        prefix: Scheme prefix the header must carry (e.g. "sha256=")
    """
    if not signature:
        return SignatureResult(False, "Missing signature")
    if algorithm not in SUPPORTED_ALGORITHMS:
        return SignatureResult(False, f"Unsupported algorithm: {algorithm}")
    if prefix:
        if not signature.startswith(prefix):
            return SignatureResult(False, f"Signature must start with '{prefix}'")
        signature = signature[len(prefix):]

    try:
        expected = compute_signature(payload, secret, algorithm)
        matches = timing_safe_equal(expected, signature)
    except UnicodeEncodeError:
        return SignatureResult(False, "Unencodable payload")
    if not matches:
        return SignatureResult(False, "Signature mismatch")
    return SignatureResult(True)


def verify_github_signature(
    body: str | bytes,
    signature: str | None,
    secret: str | bytes,
) -> SignatureResult:
    return verify_signature(body, signature, secret=secret, prefix="sha256=")


def verify_jira_signature(
    body: str | bytes,
    signature: str | None,
    secret: str | bytes,
) -> SignatureResult:
    return verify_signature(body, signature, secret=secret, prefix="sha256=")


def verify_slack_signature(
    body: str | bytes,
    signature: str | None,
    timestamp: str | None,
    secret: str | bytes,
    now: float | None = None,
) -> SignatureResult:
    """
    Verify a Slack request signature.

    The timestamp window is checked before any HMAC work so stale replays
    are rejected cheaply.
    """
    if not signature or not timestamp:
        return SignatureResult(False, "Missing Slack signature or timestamp")
    try:
        ts = int(timestamp)
    except ValueError:
        return SignatureResult(False, "Invalid Slack timestamp")

    current = time.time() if now is None else now
    if abs(current - ts) > SLACK_MAX_SKEW_SECONDS:
        return SignatureResult(False, "Slack request timestamp outside allowed window")

    basestring = b"v0:" + timestamp.encode("utf-8") + b":" + _as_bytes(body)
    return verify_signature(basestring, signature, secret=secret, prefix="v0=")


def sign_github_payload(body: str | bytes, secret: str | bytes) -> str:
    return "sha256=" + compute_signature(body, secret)


def sign_slack_payload(body: str | bytes, timestamp: str | int, secret: str | bytes) -> str:
    basestring = f"v0:{timestamp}:".encode("utf-8") + _as_bytes(body)
    return "v0=" + compute_signature(basestring, secret)


__all__ = [
    "SLACK_MAX_SKEW_SECONDS",
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
