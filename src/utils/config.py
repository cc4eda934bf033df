"""Configuration utility for the Linear sync service.

This module provides centralized configuration management with:
- Environment variables as the only source
- Type-coerced access to configuration values
- Named accessors for every setting the service reads
"""

import os
from typing import Any


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "DATABASE_URL")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """
    Get a configuration value from environment variables. But sometimes you just want a string.
    """
    return os.environ.get(key)


def require_config_value(key: str) -> str:
    value = os.environ.get(key)
    if value is None:
        raise ValueError(f"Environment variable {key} is required")
    return value


def get_database_url() -> str:
    """Get the synced store's database connection URL.

    Raises:
        ValueError: If DATABASE_URL is not configured
    """
    url = get_config_value_str("DATABASE_URL")
    if url:
        return url

    raise ValueError("Database URL not found. Please provide DATABASE_URL environment variable")


def get_sync_environment() -> str:
    """Get the deployment environment name ('local', 'staging', 'production', ...)."""
    return get_config_value_str("SYNC_ENVIRONMENT") or "local"


def get_hub_data_owner_id() -> str:
    """Owner key whose synced records hub tenants read from.

    Raises:
        ValueError: If HUB_DATA_OWNER_ID is not configured
    """
    return require_config_value("HUB_DATA_OWNER_ID")


def get_linear_api_key() -> str:
    """Linear API token used by backfill and reconcile runs."""
    return require_config_value("LINEAR_API_KEY")


def get_linear_webhook_secret() -> str | None:
    """Fallback webhook signing secret, used when no subscription matches a delivery."""
    return get_config_value_str("LINEAR_WEBHOOK_SECRET") or None


def is_stale_update_guard_enabled() -> bool:
    """Whether upserts should drop deliveries older than the stored updatedAt."""
    return bool(get_config_value("SYNC_REJECT_STALE_UPDATES", False))


def get_hub_team_cache_ttl_seconds() -> float:
    return float(get_config_value("HUB_TEAM_CACHE_TTL_SECONDS", 60))
