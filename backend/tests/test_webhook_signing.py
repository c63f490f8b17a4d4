"""Tests for webhook HMAC signing and verification."""

import hashlib
import hmac

import pytest

from core.webhook_signing import (
    MAX_WEBHOOK_BODY_SIZE,
    SignedEnvelope,
    build_signature_header,
    build_signed_payload,
    compute_signature,
    generate_webhook_secret,
    parse_secrets,
    parse_signature_header,
    validate_freshness,
    verify_signature,
    verify_with_secrets,
)

NOW = 1_700_000_000


def _flip(s: str, index: int) -> str:
    """Replace one character with a different one."""
    replacement = "0" if s[index] != "0" else "1"
    return s[:index] + replacement + s[index + 1:]


class TestParseSignatureHeader:
    """Test parsing of `t=...,v1=...` headers."""

    def test_valid_header(self):
        assert parse_signature_header("t=1700000000,v1=abc123") == SignedEnvelope(
            timestamp=1700000000, signature="abc123"
        )

    def test_missing_timestamp(self):
        assert parse_signature_header("v1=abc123") is None

    def test_missing_signature(self):
        assert parse_signature_header("t=1700000000") is None

    def test_non_numeric_timestamp(self):
        assert parse_signature_header("t=soon,v1=abc123") is None

    def test_non_finite_timestamp(self):
        assert parse_signature_header("t=inf,v1=abc123") is None
        assert parse_signature_header("t=nan,v1=abc123") is None

    def test_fractional_timestamp_rejected(self):
        assert parse_signature_header("t=1700000000.5,v1=abc123") is None

    @pytest.mark.parametrize("value", ["1_700_000_000", "1.7e9", "0x6553f100", "+1700000000", "1700000000\n"])
    def test_non_decimal_timestamp_forms_rejected(self, value):
        assert parse_signature_header(f"t={value},v1=abc123") is None

    def test_empty_and_none(self):
        assert parse_signature_header("") is None
        assert parse_signature_header(None) is None

    def test_unknown_keys_ignored(self):
        parsed = parse_signature_header("t=1700000000,v0=old,v1=abc123,x=y")
        assert parsed == SignedEnvelope(timestamp=1700000000, signature="abc123")

    def test_empty_values_ignored(self):
        assert parse_signature_header("t=,v1=abc123") is None
        assert parse_signature_header("t=1700000000,v1=") is None


class TestParseSecrets:
    """Test comma-separated secret lists (key rotation)."""

    def test_single_key(self):
        assert parse_secrets("key1") == ["key1"]

    def test_multiple_keys_keep_order(self):
        assert parse_secrets("new,old") == ["new", "old"]

    def test_trims_whitespace(self):
        assert parse_secrets(" new , old ") == ["new", "old"]

    def test_filters_empty_entries(self):
        assert parse_secrets("new,,old,") == ["new", "old"]

    def test_empty(self):
        assert parse_secrets("") == []
        assert parse_secrets(None) == []


class TestComputeSignature:
    """Test HMAC computation."""

    def test_matches_hmac_sha256(self):
        payload = build_signed_payload(NOW, '{"hostname":"a.com"}')
        expected = hmac.new(b"secret", payload.encode(), hashlib.sha256).hexdigest()
        assert compute_signature(payload, "secret") == expected

    def test_signed_payload_binds_timestamp(self):
        assert build_signed_payload(NOW, "body") == f"{NOW}.body"

    def test_different_secrets_different_signatures(self):
        assert compute_signature("payload", "secret1") != compute_signature("payload", "secret2")

    def test_hex_digest_length(self):
        assert len(compute_signature("payload", "secret")) == 64


class TestVerifySignature:
    """Test constant-time verification."""

    PAYLOAD = f'{NOW}.{{"hostname": "a.com"}}'

    def test_valid_signature(self):
        sig = compute_signature(self.PAYLOAD, "secret")
        assert verify_signature(self.PAYLOAD, sig, "secret") is True

    @pytest.mark.parametrize("index", [0, 5, 10, -1])
    def test_tampered_payload(self, index):
        sig = compute_signature(self.PAYLOAD, "secret")
        index = index % len(self.PAYLOAD)
        assert verify_signature(_flip(self.PAYLOAD, index), sig, "secret") is False

    @pytest.mark.parametrize("index", [0, 3, -1])
    def test_tampered_secret(self, index):
        sig = compute_signature(self.PAYLOAD, "secret")
        index = index % len("secret")
        assert verify_signature(self.PAYLOAD, sig, _flip("secret", index)) is False

    @pytest.mark.parametrize("index", [0, 31, 63])
    def test_tampered_signature(self, index):
        sig = compute_signature(self.PAYLOAD, "secret")
        assert verify_signature(self.PAYLOAD, _flip(sig, index), "secret") is False

    def test_length_mismatch(self):
        sig = compute_signature(self.PAYLOAD, "secret")
        assert verify_signature(self.PAYLOAD, sig[:-2], "secret") is False
        assert verify_signature(self.PAYLOAD, sig + "00", "secret") is False

    def test_non_hex_signature(self):
        assert verify_signature(self.PAYLOAD, "z" * 64, "secret") is False

    def test_uppercase_hex_accepted(self):
        sig = compute_signature(self.PAYLOAD, "secret")
        assert verify_signature(self.PAYLOAD, sig.upper(), "secret") is True


class TestVerifyWithSecrets:
    """Test key rotation."""

    PAYLOAD = f"{NOW}.body"

    def test_matches_newest_key(self):
        sig = compute_signature(self.PAYLOAD, "new")
        assert verify_with_secrets(self.PAYLOAD, sig, ["new", "old"]) is True

    def test_matches_old_key_during_rotation(self):
        sig = compute_signature(self.PAYLOAD, "old")
        assert verify_with_secrets(self.PAYLOAD, sig, ["new", "old"]) is True

    def test_no_key_matches(self):
        sig = compute_signature(self.PAYLOAD, "other")
        assert verify_with_secrets(self.PAYLOAD, sig, ["new", "old"]) is False

    def test_empty_secrets(self):
        sig = compute_signature(self.PAYLOAD, "new")
        assert verify_with_secrets(self.PAYLOAD, sig, []) is False


class TestValidateFreshness:
    """Test replay-window checks."""

    def test_now_accepted(self):
        assert validate_freshness(NOW, now=NOW) is True

    def test_window_edge_accepted(self):
        assert validate_freshness(NOW - 300, now=NOW) is True

    def test_within_window(self):
        assert validate_freshness(NOW - 120, now=NOW) is True

    def test_stale_rejected(self):
        assert validate_freshness(NOW - 301, now=NOW) is False

    def test_future_rejected(self):
        assert validate_freshness(NOW + 1, now=NOW) is False

    def test_custom_max_age(self):
        assert validate_freshness(NOW - 30, now=NOW, max_age_seconds=60) is True
        assert validate_freshness(NOW - 61, now=NOW, max_age_seconds=60) is False

    @pytest.mark.parametrize("value", ["1700000000", None, True, float("nan"), float("inf")])
    def test_non_numeric_rejected(self, value):
        assert validate_freshness(value, now=NOW) is False

    def test_defaults_to_wall_clock(self):
        import time

        assert validate_freshness(int(time.time()) - 5) is True


class TestBuildSignatureHeader:
    """Test the sender-side helper."""

    def test_round_trip(self):
        body = '{"hostname": "a.com"}'
        parsed = parse_signature_header(build_signature_header(body, "secret", timestamp=NOW))
        assert parsed.timestamp == NOW
        assert verify_signature(build_signed_payload(NOW, body), parsed.signature, "secret")

    def test_defaults_timestamp_to_now(self):
        import time

        parsed = parse_signature_header(build_signature_header("body", "secret"))
        assert abs(parsed.timestamp - int(time.time())) <= 2


class TestGenerateWebhookSecret:
    """Test webhook secret generation."""

    def test_prefix(self):
        assert generate_webhook_secret().startswith("whsec_")

    def test_sufficient_length(self):
        assert len(generate_webhook_secret()) > 40

    def test_uniqueness(self):
        secrets = {generate_webhook_secret() for _ in range(100)}
        assert len(secrets) == 100


def test_max_body_size_is_64_kib():
    assert MAX_WEBHOOK_BODY_SIZE == 64 * 1024
