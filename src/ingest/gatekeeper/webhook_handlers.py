"""Webhook handler functions for gatekeeper service."""

from fastapi import HTTPException, Request

from connectors.linear import (
    LinearWebhookIngestor,
    MalformedPayloadError,
    SignatureInvalidError,
    SignatureLengthMismatchError,
    StorageUnavailableError,
    extract_linear_webhook_id,
    extract_linear_webhook_metadata,
)
from connectors.linear.linear_webhook_handler import LINEAR_SIGNATURE_HEADER
from src.ingest.gatekeeper.models import WebhookResponse
from src.ingest.repositories.sync_subscription_repository import (
    SyncSubscription,
    SyncSubscriptionStore,
)
from src.utils.config import get_config_value_str, get_linear_webhook_secret
from src.utils.logging import LogContext, get_logger

logger = get_logger(__name__)


async def resolve_signing_candidates(
    subscriptions: SyncSubscriptionStore, body_str: str
) -> list[SyncSubscription]:
    """Subscriptions whose secret may have signed this delivery, most specific first.

    The subscription matching the delivery's webhookId comes first, then every
    other active subscription, then the configured fallback secret paired with
    HUB_DATA_OWNER_ID.
    """
    candidates: list[SyncSubscription] = []

    webhook_id = extract_linear_webhook_id(body_str)
    if webhook_id:
        subscription = await subscriptions.get_by_webhook_id(webhook_id)
        if subscription:
            candidates.append(subscription)
        else:
            logger.info("No subscription for webhook id, trying all secrets", webhook_id=webhook_id)

    for subscription in await subscriptions.list_active():
        if subscription not in candidates:
            candidates.append(subscription)

    fallback_secret = get_linear_webhook_secret()
    fallback_owner = get_config_value_str("HUB_DATA_OWNER_ID")
    if fallback_secret and fallback_owner:
        candidates.append(SyncSubscription(owner_id=fallback_owner, webhook_secret=fallback_secret))

    return candidates


async def handle_linear_webhook(request: Request) -> WebhookResponse:
    """Verify and ingest a Linear webhook delivery.

    Status codes:
        401: signature missing, malformed, or matching no candidate secret
        400: verified body is not a well-formed Linear envelope
        503: synced store unreachable (Linear retries)
    """
    body = await request.body()
    body_str = body.decode("utf-8", errors="replace")
    headers = dict(request.headers)

    webhook_metadata = extract_linear_webhook_metadata(headers, body_str)
    tracking_context = {f"webhook_meta_{key}": value for key, value in webhook_metadata.items()}

    with LogContext(**tracking_context):
        logger.info("Received linear webhook")

        disable_validation = getattr(
            request.app.state, "dangerously_disable_webhook_validation", False
        )
        signature = headers.get(LINEAR_SIGNATURE_HEADER)
        if not signature and not disable_validation:
            logger.warning("Rejected Linear webhook without signature")
            raise HTTPException(status_code=401, detail="Missing signature")

        try:
            candidates = await resolve_signing_candidates(request.app.state.subscriptions, body_str)
        except StorageUnavailableError as e:
            logger.error(f"Subscription lookup failed: {e}")
            raise HTTPException(status_code=503, detail="Storage unavailable")

        if not candidates:
            logger.error("No Linear signing secret configured")
            raise HTTPException(status_code=401, detail="Invalid signature")

        ingestor: LinearWebhookIngestor = request.app.state.ingestor
        for candidate in candidates:
            try:
                result = await ingestor.ingest_delivery(
                    body, signature, candidate.owner_id, candidate.webhook_secret
                )
            except SignatureLengthMismatchError as e:
                # The length is a property of the signature, so every secret fails the same way
                logger.warning(
                    "Rejected Linear webhook with wrong signature length",
                    provided_length=e.provided_length,
                    expected_length=e.expected_length,
                )
                raise HTTPException(status_code=401, detail="Invalid signature")
            except SignatureInvalidError:
                continue
            except MalformedPayloadError as e:
                logger.warning(f"Rejected malformed Linear webhook: {e}")
                raise HTTPException(status_code=400, detail=str(e))
            except StorageUnavailableError as e:
                logger.error(f"Failed to store Linear webhook: {e}")
                raise HTTPException(status_code=503, detail="Storage unavailable")

            with LogContext(owner_id=result.owner_id):
                logger.info(
                    "Linear webhook processed",
                    entity_type=result.entity_type,
                    action=result.action,
                    natural_key=result.natural_key,
                    processed=result.processed,
                    reason=result.reason,
                )
            return WebhookResponse(
                success=True,
                message="Webhook processed" if result.processed else f"Webhook ignored: {result.reason}",
                owner_id=result.owner_id,
                entity_type=result.entity_type,
                natural_key=result.natural_key,
                processed=result.processed,
            )

        logger.warning("Rejected Linear webhook: signature matched no secret", candidates=len(candidates))
        raise HTTPException(status_code=401, detail="Invalid signature")
