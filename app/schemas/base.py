"""
Base schemas with common functionality.
"""
from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema with common functionality for all schemas"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        frozen=True
    )


class WebhookSchema(BaseModel):
    """Base for inbound webhook bodies; Shopify sends many fields we ignore"""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True
    )
