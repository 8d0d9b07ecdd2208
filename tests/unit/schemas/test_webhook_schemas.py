import pytest
from pydantic import ValidationError

from app.schemas.webhooks import InventoryLevelWebhook, OrderLineItem, OrderWebhook


class TestInventoryLevelWebhook:
    def test_accepts_numeric_and_gid_ids(self):
        event = InventoryLevelWebhook.model_validate({
            "inventory_item_id": 111,
            "location_id": "gid://shopify/Location/99",
            "available": 5,
            "updated_at": "2025-01-01T00:00:00Z",
        })

        assert event.inventory_item_id == 111
        assert event.location_id == "gid://shopify/Location/99"
        assert event.available == 5

    def test_whole_float_available_is_accepted(self):
        event = InventoryLevelWebhook.model_validate({"inventory_item_id": 1, "location_id": 2, "available": 4.0})
        assert event.available == 4

    def test_negative_available_is_accepted(self):
        event = InventoryLevelWebhook.model_validate({"inventory_item_id": 1, "location_id": 2, "available": -2})
        assert event.available == -2

    @pytest.mark.parametrize("available", [None, "5", True, 2.5, [5]])
    def test_invalid_available_is_rejected(self, available):
        with pytest.raises(ValidationError):
            InventoryLevelWebhook.model_validate({"inventory_item_id": 1, "location_id": 2, "available": available})

    @pytest.mark.parametrize("field", ["inventory_item_id", "location_id"])
    @pytest.mark.parametrize("value", [None, "", "  ", False])
    def test_invalid_ids_are_rejected(self, field, value):
        data = {"inventory_item_id": 1, "location_id": 2, "available": 5}
        data[field] = value
        with pytest.raises(ValidationError):
            InventoryLevelWebhook.model_validate(data)


class TestOrderWebhook:
    def test_line_item_fields_are_normalized(self):
        item = OrderLineItem.model_validate({"sku": "  RED-L ", "quantity": "3", "title": "Red shirt"})
        assert item.sku == "RED-L"
        assert item.quantity == 3

    @pytest.mark.parametrize("sku", [None, "", "   "])
    def test_blank_sku_becomes_none(self, sku):
        assert OrderLineItem.model_validate({"sku": sku, "quantity": 1}).sku is None

    @pytest.mark.parametrize("quantity", [None, "three", True, {}, 2.5, "2.5"])
    def test_malformed_quantity_becomes_none(self, quantity):
        assert OrderLineItem.model_validate({"sku": "A", "quantity": quantity}).quantity is None

    def test_whole_float_quantity_is_accepted(self):
        assert OrderLineItem.model_validate({"sku": "A", "quantity": 2.0}).quantity == 2

    def test_non_object_line_items_are_dropped(self):
        order = OrderWebhook.model_validate({"id": 1, "line_items": [{"sku": "A", "quantity": 1}, "B", None, 3]})
        assert len(order.line_items) == 1

    def test_empty_line_items_are_valid(self):
        assert OrderWebhook.model_validate({"id": 1, "line_items": []}).line_items == []

    @pytest.mark.parametrize("data", [
        {"id": 1},
        {"id": 1, "line_items": None},
        {"id": 1, "line_items": {"sku": "A"}},
        {"line_items": []},
        {"id": "", "line_items": []},
    ])
    def test_invalid_orders_are_rejected(self, data):
        with pytest.raises(ValidationError):
            OrderWebhook.model_validate(data)

    def test_resolve_location_order(self):
        order = OrderWebhook.model_validate({
            "id": 1,
            "location_id": 8,
            "fulfillments": [{"location_id": 9}],
            "line_items": [{"sku": "A", "quantity": 1, "location_id": 7}, {"sku": "B", "quantity": 1}],
        })

        assert order.resolve_location(order.line_items[0], "99") == 7
        assert order.resolve_location(order.line_items[1], "99") == 8

    def test_resolve_location_falls_back_to_fulfillment_then_default(self):
        with_fulfillment = OrderWebhook.model_validate({
            "id": 1,
            "fulfillments": [{"location_id": 9}, {"location_id": 10}],
            "line_items": [{"sku": "A", "quantity": 1}],
        })
        bare = OrderWebhook.model_validate({"id": 2, "line_items": [{"sku": "A", "quantity": 1}]})

        assert with_fulfillment.resolve_location(with_fulfillment.line_items[0], "99") == 9
        assert bare.resolve_location(bare.line_items[0], "99") == "99"
        assert bare.resolve_location(bare.line_items[0]) is None
