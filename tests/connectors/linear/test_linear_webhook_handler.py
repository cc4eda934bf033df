"""Tests for Linear webhook signature verification and envelope metadata."""

import hashlib
import hmac
import json

import pytest

from connectors.linear.linear_webhook_handler import (
    extract_linear_webhook_id,
    extract_linear_webhook_metadata,
    verify_linear_signature,
)
from src.utils.errors import SignatureInvalidError, SignatureLengthMismatchError

SECRET = "lin_wh_test_secret"


def sign(body: bytes, secret: str = SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


class TestVerifyLinearSignature:
    """Test HMAC-SHA256 signature verification."""

    def test_valid_signature(self):
        body = b'{"action":"create","type":"Issue","data":{"id":"issue-1"}}'

        assert verify_linear_signature(body, sign(body), SECRET) is True

    def test_uppercase_hex_is_accepted(self):
        body = b'{"action":"update"}'

        assert verify_linear_signature(body, sign(body).upper(), SECRET) is True

    def test_wrong_secret(self):
        body = b'{"action":"create"}'

        assert verify_linear_signature(body, sign(body, "other-secret"), SECRET) is False

    def test_tampered_body(self):
        body = b'{"action":"create","data":{"id":"issue-1"}}'
        signature = sign(body)

        assert verify_linear_signature(body.replace(b"issue-1", b"issue-2"), signature, SECRET) is False

    def test_empty_body_is_valid_input(self):
        assert verify_linear_signature(b"", sign(b""), SECRET) is True

    def test_non_hex_signature_is_rejected(self):
        assert verify_linear_signature(b"{}", "not-a-hex-signature!", SECRET) is False

    def test_short_signature_raises_length_mismatch(self):
        with pytest.raises(SignatureLengthMismatchError) as exc_info:
            verify_linear_signature(b"{}", "abcd", SECRET)

        assert exc_info.value.provided_length == 2
        assert exc_info.value.expected_length == 32

    def test_length_mismatch_is_a_signature_error(self):
        """Callers catching SignatureInvalidError also catch the length case."""
        with pytest.raises(SignatureInvalidError):
            verify_linear_signature(b"{}", sign(b"{}") + "00", SECRET)


class TestExtractLinearWebhookId:
    def test_extracts_and_strips(self):
        assert extract_linear_webhook_id(json.dumps({"webhookId": " wh-1 "})) == "wh-1"

    @pytest.mark.parametrize(
        "body",
        ["not json", "[]", json.dumps({"webhookId": ""}), json.dumps({"webhookId": 42}), "{}"],
    )
    def test_missing_or_invalid(self, body):
        assert extract_linear_webhook_id(body) is None


class TestExtractLinearWebhookMetadata:
    def test_full_envelope(self):
        body = json.dumps(
            {
                "action": "update",
                "type": "Issue",
                "webhookId": "wh-1",
                "actor": {"id": "user-1", "type": "user"},
                "updatedFrom": {"title": "Old", "priority": 3},
                "data": {"id": "issue-1"},
            }
        )
        headers = {"linear-delivery": "delivery-1", "linear-event": "Issue"}

        metadata = extract_linear_webhook_metadata(headers, body)

        assert metadata["payload_size"] == len(body)
        assert metadata["delivery_id"] == "delivery-1"
        assert metadata["event_type"] == "Issue"
        assert metadata["action"] == "update"
        assert metadata["webhook_id"] == "wh-1"
        assert metadata["actor_id"] == "user-1"
        assert metadata["updated_fields_count"] == 2
        assert metadata["entity_type"] == "issue"
        assert metadata["entity_id"] == "issue-1"

    def test_unparseable_body(self):
        metadata = extract_linear_webhook_metadata({}, "{not json")

        assert metadata["parse_error"] == "Failed to parse JSON"
        assert metadata["event_type"] == "unknown"
