"""Error handling utilities for consistent exception recording and metrics."""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from typing import TypedDict

import newrelic.agent
import structlog

# Support both standard Logger and structlog BoundLogger
LoggerType = logging.Logger | structlog.BoundLogger


class ErrorCounter(TypedDict, total=False):
    """Counter dict for tracking success/failure metrics."""

    successful: int
    failed: int
    skipped: int


@contextmanager
def record_exception_and_ignore(
    logger: LoggerType, context: str, counter: ErrorCounter
) -> Generator[None]:
    """Context manager that records both successes and failures for batch metrics.

    On success: increments counter["successful"]
    On exception: logs, records to New Relic, increments counter["failed"], continues execution

    Example:
        counter: ErrorCounter = {}
        for payload in issues:
            with record_exception_and_ignore(logger, f"Failed to upsert issue {payload.get('id')}", counter):
                await store.upsert(map_issue_webhook_to_record("create", payload, owner_id))

        logger.info(f"Upserted {counter.get('successful', 0)} issues, {counter.get('failed', 0)} failed")
    """
    try:
        yield
        counter["successful"] = counter.get("successful", 0) + 1
    except Exception as e:
        logger.error(f"{context}: {e}")
        newrelic.agent.record_exception()
        counter["failed"] = counter.get("failed", 0) + 1


def merge_counters(*counters: ErrorCounter) -> ErrorCounter:
    """Sum several counters into a new one."""
    merged: ErrorCounter = {}
    for counter in counters:
        merged["successful"] = merged.get("successful", 0) + counter.get("successful", 0)
        merged["failed"] = merged.get("failed", 0) + counter.get("failed", 0)
        if "skipped" in counter:
            merged["skipped"] = merged.get("skipped", 0) + counter["skipped"]
    return merged
