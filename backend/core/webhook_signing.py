"""Webhook HMAC signature generation and verification.

Inbound config-refresh webhooks are signed with HMAC-SHA256 so the
storefront can verify that the caller holds one of the shared secrets.

Header carried by the sender:
  X-Webhook-Signature: t=<unix_timestamp>,v1=<hex_digest>

Verification:
  1. Parse the header into a timestamp and a hex signature
  2. Compute HMAC-SHA256 over: f"{timestamp}.{body}" for every configured secret
  3. Compare with the received signature using constant-time comparison
  4. Check the timestamp is within tolerance (default: 5 minutes, never in the future)

Key rotation:
  WEBHOOK_SECRET="current_key,previous_key" - secrets are tried newest first,
  so an operator can publish a new key while the old one is still accepted.

Usage:
    # Signing (sender side)
    header = build_signature_header(body, secret)

    # Verification (inbound)
    envelope = parse_signature_header(header)
    signed_payload = build_signed_payload(envelope.timestamp, body)
    ok = verify_with_secrets(signed_payload, envelope.signature, secrets)
    fresh = validate_freshness(envelope.timestamp)
"""

import hashlib
import hmac
import math
import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Optional


DEFAULT_TOLERANCE_SECONDS = 300  # 5 minutes

# Maximum webhook body size in bytes (64 KiB)
MAX_WEBHOOK_BODY_SIZE = 65_536

# Whole seconds, plain decimal digits only
_TIMESTAMP_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class SignedEnvelope:
    """Timestamp and signature carried by the signature header."""

    timestamp: int
    signature: str


def parse_signature_header(header: Optional[str]) -> Optional[SignedEnvelope]:
    """Parse a `t=<unix_seconds>,v1=<hex_hmac>` header.

    Unknown keys are ignored so senders can add new signature versions
    without breaking older receivers.

    Returns:
        SignedEnvelope, or None if the header is empty or malformed
    """
    if not header:
        return None

    timestamp: Optional[int] = None
    signature: Optional[str] = None

    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep or not value:
            continue
        if key == "t":
            if not _TIMESTAMP_RE.fullmatch(value):
                return None
            timestamp = int(value)
        elif key == "v1":
            signature = value

    if timestamp is None or not signature:
        return None

    return SignedEnvelope(timestamp=timestamp, signature=signature)


def parse_secrets(value: Optional[str]) -> list[str]:
    """Split a comma-separated secrets value, trimming blanks."""
    if not value:
        return []
    return [s.strip() for s in value.split(",") if s.strip()]


def build_signed_payload(timestamp: int, raw_body: str) -> str:
    """Bind the timestamp into the signed material."""
    return f"{timestamp}.{raw_body}"


def compute_signature(signed_payload: str, secret: str) -> str:
    """Compute the HMAC-SHA256 hex digest of a signed payload."""
    return hmac.new(
        secret.encode("utf-8"),
        signed_payload.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def verify_signature(signed_payload: str, received_hex: str, secret: str) -> bool:
    """Verify a signature against a single secret.

    Lengths are checked before the constant-time comparison; a length
    mismatch reveals nothing about the secret.
    """
    expected_hex = compute_signature(signed_payload, secret)

    try:
        received = bytes.fromhex(received_hex)
    except ValueError:
        return False
    expected = bytes.fromhex(expected_hex)

    if len(received) != len(expected):
        return False

    return hmac.compare_digest(received, expected)


def verify_with_secrets(
    signed_payload: str,
    received_hex: str,
    secrets_list: list[str],
) -> bool:
    """Try each secret in order and return True on the first match."""
    for secret in secrets_list:
        if verify_signature(signed_payload, received_hex, secret):
            return True
    return False


def validate_freshness(
    timestamp: Any,
    now: Optional[float] = None,
    max_age_seconds: int = DEFAULT_TOLERANCE_SECONDS,
) -> bool:
    """Check the signed timestamp is neither stale nor in the future.

    Args:
        timestamp: Unix timestamp in seconds from the signature header
        now: Current unix time in seconds (defaults to time.time())
        max_age_seconds: Maximum accepted age

    Returns:
        True if now - max_age_seconds <= timestamp <= now
    """
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return False
    if not math.isfinite(timestamp):
        return False

    current = time.time() if now is None else now
    age = current - timestamp
    return 0 <= age <= max_age_seconds


def build_signature_header(
    raw_body: str,
    secret: str,
    timestamp: Optional[int] = None,
) -> str:
    """Sign a webhook body and return the X-Webhook-Signature header value.

    Args:
        raw_body: Exact request body that will be sent
        secret: Signing secret shared with the storefront
        timestamp: Unix timestamp (defaults to now)
    """
    ts = int(time.time()) if timestamp is None else timestamp
    signature = compute_signature(build_signed_payload(ts, raw_body), secret)
    return f"t={ts},v1={signature}"


def generate_webhook_secret() -> str:
    """Generate a cryptographically secure webhook signing secret."""
    return f"whsec_{secrets.token_urlsafe(32)}"
