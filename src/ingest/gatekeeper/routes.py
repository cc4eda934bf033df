"""Route definitions for gatekeeper service."""

from fastapi import APIRouter, Request

from src.ingest.gatekeeper.models import WebhookResponse
from src.ingest.gatekeeper.webhook_handlers import handle_linear_webhook

router = APIRouter()


@router.post("/webhooks/linear", response_model=WebhookResponse)
async def linear_webhook(request: Request):
    """Process Linear webhook. The owner is resolved from the signing subscription."""
    return await handle_linear_webhook(request)
