"""
Shared utility functions for Linear payloads.
"""

from datetime import UTC, datetime
from typing import Any

PRIORITY_LABELS = {0: "No priority", 1: "Urgent", 2: "High", 3: "Medium", 4: "Low"}

# GraphQL connection fields that arrive as {"nodes": [...]} from the API but as
# plain arrays from webhooks.
CONNECTION_FIELDS = ("labels", "members", "teams", "projects", "initiatives", "subInitiatives", "children")


def priority_to_label(priority: Any) -> str:
    """Map a Linear priority number to its label. Anything unrecognized is "No priority"."""
    if not isinstance(priority, int) or isinstance(priority, bool):
        return PRIORITY_LABELS[0]
    return PRIORITY_LABELS.get(priority, PRIORITY_LABELS[0])


def get_user_display_name(user_data: dict[str, Any] | None) -> str:
    """Best display name for a Linear user, preferring displayName over name."""
    if not user_data:
        return "Unknown"

    return user_data.get("displayName") or user_data.get("name") or "Unknown"


def parse_linear_timestamp(timestamp: str) -> datetime:
    """Parse a Linear ISO 8601 timestamp ("2026-02-26T09:00:00.000Z").

    Naive values are assumed to be UTC.
    """
    if timestamp.endswith("Z"):
        timestamp = timestamp[:-1] + "+00:00"
    parsed = datetime.fromisoformat(timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def format_linear_timestamp(value: datetime | None) -> str | None:
    """Render a stored timestamp the way Linear does (UTC, millisecond precision, Z suffix)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def flatten_connections(node: dict[str, Any]) -> dict[str, Any]:
    """Replace GraphQL connection objects with their node lists.

    Backfilled entities then have the same document shape as webhook ones.
    """
    flattened = dict(node)
    for field in CONNECTION_FIELDS:
        value = flattened.get(field)
        if isinstance(value, dict) and "nodes" in value:
            flattened[field] = [n for n in value.get("nodes") or [] if n is not None]
    return flattened
