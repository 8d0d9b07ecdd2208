"""
Schemas for inbound Shopify webhook bodies.

Only the fields the sync handlers read are declared; everything else in the
payload is ignored.
"""

from typing import List, Optional, Union

from pydantic import field_validator

from app.schemas.base import WebhookSchema

ResourceId = Union[int, str]


def _reject_bool(value):
    # bool is a subclass of int; a JSON true/false is never a valid id or count
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid value")
    return value


class InventoryLevelWebhook(WebhookSchema):
    """Body of inventory_levels/update"""
    inventory_item_id: ResourceId
    location_id: ResourceId
    available: int

    @field_validator("inventory_item_id", "location_id", mode="before")
    @classmethod
    def validate_id(cls, v):
        _reject_bool(v)
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("id is required")
        return v

    @field_validator("available", mode="before")
    @classmethod
    def validate_available(cls, v):
        _reject_bool(v)
        if not isinstance(v, (int, float)):
            raise ValueError("available must be numeric")
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("available must be a whole number")
        return int(v)


class OrderLineItem(WebhookSchema):
    sku: Optional[str] = None
    quantity: Optional[int] = None
    location_id: Optional[ResourceId] = None

    @field_validator("sku", mode="before")
    @classmethod
    def normalize_sku(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator("quantity", mode="before")
    @classmethod
    def validate_quantity(cls, v):
        # Malformed quantities make the line item unusable, not the order invalid
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, float) and not v.is_integer():
            return None
        try:
            return int(v)
        except (TypeError, ValueError, OverflowError):
            return None


class OrderFulfillment(WebhookSchema):
    location_id: Optional[ResourceId] = None


class OrderWebhook(WebhookSchema):
    """Body of orders/create and orders/cancelled"""
    id: ResourceId
    line_items: List[OrderLineItem]
    location_id: Optional[ResourceId] = None
    fulfillments: Optional[List[OrderFulfillment]] = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        _reject_bool(v)
        if v is None or (isinstance(v, str) and not v.strip()):
            raise ValueError("order id is required")
        return v

    @field_validator("line_items", mode="before")
    @classmethod
    def keep_object_line_items(cls, v):
        if not isinstance(v, list):
            raise ValueError("line_items must be a list")
        return [item for item in v if isinstance(item, dict)]

    def resolve_location(self, line_item: OrderLineItem, default: Optional[ResourceId] = None) -> Optional[ResourceId]:
        """Line item location, then order location, then first fulfillment, then the configured default"""
        if line_item.location_id is not None:
            return line_item.location_id
        if self.location_id is not None:
            return self.location_id
        if self.fulfillments and self.fulfillments[0].location_id is not None:
            return self.fulfillments[0].location_id
        return default
