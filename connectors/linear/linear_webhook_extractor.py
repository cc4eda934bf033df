"""Ingestion gateway for Linear webhook deliveries and backfill pages.

A delivery is verified, mapped to a SyncedRecord and upserted keyed by
(owner_id, natural_key). Replaying a delivery yields the same stored row.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ValidationError

from connectors.linear.linear_models import (
    WEBHOOK_ENTITY_TYPES,
    LinearWebhookPayload,
    SyncedEntityType,
    SyncedRecord,
)
from connectors.linear.linear_record_mapper import map_payload_to_record
from connectors.linear.linear_webhook_handler import verify_linear_signature
from src.utils.error_handling import ErrorCounter, record_exception_and_ignore
from src.utils.errors import (
    MalformedPayloadError,
    SignatureInvalidError,
    StorageUnavailableError,
    UnsupportedEntityTypeError,
)
from src.utils.logging import LogContext

if TYPE_CHECKING:
    from src.ingest.repositories.synced_entity_repository import SyncedEntityStore

logger = logging.getLogger(__name__)


class IngestResult(BaseModel):
    owner_id: str
    entity_type: str
    action: str
    natural_key: str | None = None
    processed: bool
    # Set when processed is False: "unsupported_entity_type", "remove_ignored" or "stale_update"
    reason: str | None = None


def resolve_entity_type(entity_type: str) -> SyncedEntityType:
    """Accept both Linear's webhook type ("Issue") and our own ("issue")."""
    if entity_type in WEBHOOK_ENTITY_TYPES:
        return WEBHOOK_ENTITY_TYPES[entity_type]
    try:
        return SyncedEntityType(entity_type)
    except ValueError as e:
        raise UnsupportedEntityTypeError(entity_type) from e


def _payload_id(payload: Any) -> str:
    return str(payload.get("id", "unknown")) if isinstance(payload, dict) else "unknown"


class LinearWebhookIngestor:
    """Verifies, maps and stores Linear entities for one synced store."""

    def __init__(self, store: SyncedEntityStore, verify_signatures: bool = True):
        self.store = store
        self.verify_signatures = verify_signatures

    def verify(self, raw_body: bytes, signature: str | None, signing_secret: str) -> None:
        """Raise SignatureInvalidError unless ``signature`` signs ``raw_body``.

        SignatureLengthMismatchError (a SignatureInvalidError) propagates as-is
        so callers can tell it apart.
        """
        if not self.verify_signatures:
            return
        if not signature:
            raise SignatureInvalidError("Missing signature")
        if not verify_linear_signature(raw_body, signature, signing_secret):
            raise SignatureInvalidError("Invalid signature")

    async def ingest(
        self,
        raw_body: bytes,
        signature: str | None,
        entity_type: str,
        action: str,
        payload: dict[str, Any],
        owner_id: str,
        signing_secret: str,
    ) -> IngestResult:
        """Verify the signature, then map and upsert ``payload``."""
        self.verify(raw_body, signature, signing_secret)
        return await self._store_payload(entity_type, action, payload, owner_id)

    async def ingest_delivery(
        self, raw_body: bytes, signature: str | None, owner_id: str, signing_secret: str
    ) -> IngestResult:
        """Verify a raw webhook delivery and ingest its envelope.

        The body is only parsed after the signature checks out.
        """
        self.verify(raw_body, signature, signing_secret)

        try:
            envelope = LinearWebhookPayload.model_validate(json.loads(raw_body))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedPayloadError(f"Webhook body is not valid JSON: {e}") from e
        except ValidationError as e:
            raise MalformedPayloadError(f"Webhook envelope is missing fields: {e}") from e

        return await self._store_payload(envelope.type, envelope.action, envelope.data, owner_id)

    async def _store_payload(
        self, entity_type: str, action: str, payload: dict[str, Any], owner_id: str
    ) -> IngestResult:
        with LogContext(owner_id=owner_id, entity_type=entity_type, action=action):
            try:
                resolved = resolve_entity_type(entity_type)
            except UnsupportedEntityTypeError:
                logger.info(f"Ignoring unsupported Linear entity type: {entity_type}")
                return IngestResult(
                    owner_id=owner_id,
                    entity_type=entity_type,
                    action=action,
                    processed=False,
                    reason="unsupported_entity_type",
                )

            if action == "remove":
                # Removals are acknowledged but rows are kept
                logger.info(f"Ignoring remove of {resolved.value} {_payload_id(payload)}")
                return IngestResult(
                    owner_id=owner_id,
                    entity_type=resolved.value,
                    action=action,
                    natural_key=_payload_id(payload),
                    processed=False,
                    reason="remove_ignored",
                )

            record = map_payload_to_record(resolved, action, payload, owner_id)
            with LogContext(natural_key=record.natural_key):
                written = await self.store.upsert(record)
                if written:
                    logger.info(f"Upserted {resolved.value} {record.natural_key}")

            return IngestResult(
                owner_id=owner_id,
                entity_type=resolved.value,
                action=action,
                natural_key=record.natural_key,
                processed=written,
                reason=None if written else "stale_update",
            )

    async def ingest_batch(
        self,
        entity_type: SyncedEntityType,
        payloads: Sequence[dict[str, Any]],
        owner_id: str,
        action: str = "create",
    ) -> ErrorCounter:
        """Map and upsert many payloads (typically one backfill page).

        A payload that fails to map is logged, counted and skipped. The mapped
        records are written in one batch; if that batch is rejected they are
        retried one by one so a single bad row cannot sink the page. Rows the
        stale-update guard declined are counted as skipped. Storage outages
        still propagate.
        """
        mapping_counter: ErrorCounter = {}
        records: list[SyncedRecord] = []
        for payload in payloads:
            with record_exception_and_ignore(
                logger, f"Failed to map {entity_type.value} {_payload_id(payload)}", mapping_counter
            ):
                records.append(map_payload_to_record(entity_type, action, payload, owner_id))

        counter: ErrorCounter = {"successful": 0, "failed": mapping_counter.get("failed", 0)}
        if not records:
            return counter

        try:
            written = await self.store.upsert_many(records)
            counter["successful"] = written
            if written < len(records):
                counter["skipped"] = len(records) - written
        except StorageUnavailableError:
            raise
        except Exception as e:
            logger.warning(
                f"Batch upsert of {len(records)} {entity_type.value} records failed ({e}), "
                "retrying individually"
            )
            skipped = 0
            for record in records:
                with record_exception_and_ignore(
                    logger, f"Failed to upsert {entity_type.value} {record.natural_key}", counter
                ):
                    if not await self.store.upsert(record):
                        skipped += 1
            if skipped:
                counter["successful"] -= skipped
                counter["skipped"] = skipped

        return counter
