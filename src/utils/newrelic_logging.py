"""New Relic logging integration helpers."""

from collections.abc import MutableMapping
from typing import Any

import newrelic.agent

NOTICED_LEVELS = ("error", "critical")


def newrelic_error_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that reports error-level events to New Relic.

    Every event passes through unchanged; only the side effect differs by level.
    """
    if method_name in NOTICED_LEVELS:
        newrelic.agent.notice_error()

    return event_dict
