"""
Value types passed between the catalog client and the sync handlers.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from app.core.enums import SyncStatus
from app.schemas.base import BaseSchema


class Variant(BaseSchema):
    """A catalog variant; ids are Shopify GIDs"""
    id: str
    sku: Optional[str] = None
    inventory_item_id: str


class InventoryItem(BaseSchema):
    id: str
    sku: Optional[str] = None


class QuantityUpdate(BaseSchema):
    """Absolute set of the available quantity at one location"""
    inventory_item_id: str
    location_id: str
    quantity: int

    def to_graphql(self) -> Dict[str, Any]:
        return {
            "inventoryItemId": self.inventory_item_id,
            "locationId": self.location_id,
            "quantity": self.quantity,
        }


class QuantityDelta(BaseSchema):
    """Signed change of the available quantity at one location"""
    inventory_item_id: str
    location_id: str
    delta: int

    def to_graphql(self) -> Dict[str, Any]:
        return {
            "inventoryItemId": self.inventory_item_id,
            "locationId": self.location_id,
            "delta": self.delta,
        }


class BatchResult(BaseModel):
    """Summary of a batched, best-effort inventory mutation"""
    batches: int = 0
    applied: int = 0
    failed: int = 0
    applied_item_ids: List[str] = Field(default_factory=list)
    user_errors: List[Dict[str, Any]] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.user_errors


class SyncOutcome(BaseModel):
    """What a webhook handler decided and did"""
    status: SyncStatus
    sku: Optional[str] = None
    updated: int = 0
    detail: str = ""
