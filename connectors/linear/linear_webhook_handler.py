"""
Linear webhook verification utilities.

Handles verification of Linear webhook signatures and extraction of envelope
metadata for observability.
"""

import hashlib
import hmac
import json
import logging

from src.utils.errors import SignatureLengthMismatchError

logger = logging.getLogger(__name__)

LINEAR_SIGNATURE_HEADER = "linear-signature"


def verify_linear_signature(raw_body: bytes, signature: str, secret: str) -> bool:
    """Check a hex HMAC-SHA256 signature of ``raw_body`` keyed by ``secret``.

    Returns False for a signature that is not hex or does not match. Raises
    SignatureLengthMismatchError when the decoded signature is not digest-sized,
    since the constant-time comparison is undefined across lengths. An empty
    body is a valid input.
    """
    try:
        provided = bytes.fromhex(signature)
    except ValueError:
        return False

    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).digest()
    if len(provided) != len(expected):
        raise SignatureLengthMismatchError(len(provided), len(expected))

    return hmac.compare_digest(provided, expected)


def extract_linear_webhook_id(body_str: str) -> str | None:
    """Extract the webhookId from a delivery, used to look up the owning subscription.

    Runs before signature verification, so it only reads the envelope and never
    raises.
    """
    try:
        payload = json.loads(body_str)
    except (json.JSONDecodeError, ValueError):
        return None

    if not isinstance(payload, dict):
        return None

    webhook_id = payload.get("webhookId")
    if webhook_id and isinstance(webhook_id, str) and webhook_id.strip():
        return webhook_id.strip()
    return None


def extract_linear_webhook_metadata(
    headers: dict[str, str], body_str: str
) -> dict[str, str | int | bool]:
    """Extract metadata from a Linear webhook for observability.

    Safely extracts key information without failing webhook processing.

    Args:
        headers: Webhook headers
        body_str: Webhook body as string

    Returns:
        Dictionary containing extracted metadata with at least payload_size
    """
    metadata: dict[str, str | int | bool] = {"payload_size": len(body_str)}

    try:
        metadata["delivery_id"] = headers.get("linear-delivery", "")
        metadata["event_type"] = headers.get("linear-event", "unknown")

        try:
            payload = json.loads(body_str)
        except (json.JSONDecodeError, ValueError):
            metadata["parse_error"] = "Failed to parse JSON"
            return metadata

        if not isinstance(payload, dict):
            metadata["parse_error"] = "Payload is not an object"
            return metadata

        metadata["action"] = payload.get("action", "")
        metadata["type"] = payload.get("type", "")
        metadata["webhook_id"] = payload.get("webhookId", "")

        if actor := payload.get("actor"):
            metadata["actor_id"] = actor.get("id", "")
            metadata["actor_type"] = actor.get("type", "")

        # Partial updates carry the previous values of changed fields
        if updated_from := payload.get("updatedFrom"):
            metadata["has_updates"] = True
            metadata["updated_fields_count"] = (
                len(updated_from) if isinstance(updated_from, dict) else 0
            )

        if isinstance(data := payload.get("data"), dict):
            metadata["entity_type"] = str(payload.get("type", "unknown")).lower()
            metadata["entity_id"] = data.get("id", "")

    except Exception as e:
        logger.error(f"Error extracting Linear webhook metadata: {e}")
        metadata["extraction_error"] = str(e)

    return metadata
