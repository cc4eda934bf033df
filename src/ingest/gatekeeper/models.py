"""Pydantic models for gatekeeper service."""

from pydantic import BaseModel, ConfigDict, Field


class WebhookResponse(BaseModel):
    """Webhook response model."""

    success: bool
    message: str
    owner_id: str | None = None
    entity_type: str | None = None
    natural_key: str | None = None
    processed: bool = False


class LabelChangeRequest(BaseModel):
    """Body of a hub user's label add/remove request."""

    model_config = ConfigDict(populate_by_name=True)

    action: str = ""
    label_id: str = Field(default="", alias="labelId")
