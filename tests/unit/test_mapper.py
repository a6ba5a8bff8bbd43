"""
Unit Tests for the Shopify Record Mapper
"""
from datetime import datetime
from decimal import Decimal

import pytest

from storelens.database.models import OrderStatus, RecordStatus
from storelens.exceptions import MalformedRecord
from storelens.ingestion.mapper import (
    UNCATEGORIZED,
    cart_summary,
    flatten_address,
    map_many,
    order_status,
    to_canonical,
    to_external_patch,
)
from storelens.repository import EntityKind
from storelens.repository.schemas import ProductUpdate


class TestProductMapping:
    """Tests for Shopify products"""

    def test_maps_first_variant_price_and_total_stock(self, shopify_product):
        """Price comes from the first variant; negative inventory counts as zero"""
        record = to_canonical(EntityKind.PRODUCTS, shopify_product)

        assert record.external_id == "632910392"
        assert record.name == "IPod Nano - 8GB"
        assert record.category == "Cult Products"
        assert record.price == Decimal("199.00")
        assert record.stock == 30
        assert record.image == "https://cdn.shopify.com/s/files/ipod-nano.png"
        assert record.status == RecordStatus.ACTIVE

    def test_created_at_is_naive_utc(self, shopify_product):
        record = to_canonical(EntityKind.PRODUCTS, shopify_product)
        assert record.created_at == datetime(2024, 1, 10, 16, 0, 0)

    def test_missing_product_type_is_uncategorized(self, shopify_product):
        shopify_product["product_type"] = ""
        assert to_canonical(EntityKind.PRODUCTS, shopify_product).category == UNCATEGORIZED

    def test_draft_product_is_inactive(self, shopify_product):
        shopify_product["status"] = "draft"
        assert to_canonical(EntityKind.PRODUCTS, shopify_product).status == RecordStatus.INACTIVE

    def test_product_without_variants(self, shopify_product):
        shopify_product["variants"] = []
        record = to_canonical(EntityKind.PRODUCTS, shopify_product)
        assert record.price == Decimal("0.00")
        assert record.stock == 0

    def test_unknown_fields_are_dropped(self, shopify_product):
        record = to_canonical(EntityKind.PRODUCTS, shopify_product)
        assert not hasattr(record, "vendor")
        assert not hasattr(record, "tags")

    def test_missing_id_is_malformed(self, shopify_product):
        del shopify_product["id"]
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.PRODUCTS, shopify_product)

    def test_unparseable_price_is_malformed(self, shopify_product):
        shopify_product["variants"][0]["price"] = "abc"
        with pytest.raises(MalformedRecord) as exc:
            to_canonical(EntityKind.PRODUCTS, shopify_product)
        assert exc.value.external_id == "632910392"

    def test_non_finite_price_is_malformed(self, shopify_product):
        shopify_product["variants"][0]["price"] = "NaN"
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.PRODUCTS, shopify_product)

    def test_empty_title_is_malformed(self, shopify_product):
        shopify_product["title"] = "  "
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.PRODUCTS, shopify_product)


class TestCustomerMapping:
    """Tests for Shopify customers"""

    def test_maps_customer(self, shopify_customer):
        record = to_canonical(EntityKind.CUSTOMERS, shopify_customer)

        assert record.external_id == "207119551"
        assert record.name == "Bob Norman"
        assert record.email == "bob.norman@mail.com"
        assert record.total_orders == 1
        assert record.total_spent == Decimal("199.65")
        assert record.join_date == datetime(2024, 1, 1, 8, 0, 0)
        assert record.status == RecordStatus.ACTIVE

    def test_name_falls_back_to_email(self, shopify_customer):
        shopify_customer["first_name"] = None
        shopify_customer["last_name"] = None
        assert to_canonical(EntityKind.CUSTOMERS, shopify_customer).name == "bob.norman@mail.com"

    def test_disabled_customer_is_inactive(self, shopify_customer):
        shopify_customer["state"] = "disabled"
        assert to_canonical(EntityKind.CUSTOMERS, shopify_customer).status == RecordStatus.INACTIVE


class TestOrderMapping:
    """Tests for Shopify orders"""

    def test_maps_line_items_and_customer(self, shopify_order):
        record = to_canonical(EntityKind.ORDERS, shopify_order)

        assert record.external_id == "450789469"
        assert record.customer_external_id == "207119551"
        assert record.customer_name == "Bob Norman"
        assert [i.external_product_id for i in record.line_items] == ["632910392", "921728736"]
        assert [i.quantity for i in record.line_items] == [2, 1]
        assert record.line_items[0].price == Decimal("10.00")

    def test_total_is_left_to_the_repository(self, shopify_order):
        """Shopify's total_price includes shipping and tax and is not copied"""
        assert to_canonical(EntityKind.ORDERS, shopify_order).total is None

    def test_order_date_prefers_processed_at(self, shopify_order):
        assert to_canonical(EntityKind.ORDERS, shopify_order).order_date == datetime(2024, 2, 1, 10, 5, 0)

    def test_zero_quantity_lines_are_skipped(self, shopify_order):
        shopify_order["line_items"][1]["quantity"] = 0
        record = to_canonical(EntityKind.ORDERS, shopify_order)
        assert len(record.line_items) == 1

    def test_shipping_address_is_flattened(self, shopify_order):
        record = to_canonical(EntityKind.ORDERS, shopify_order)
        assert record.shipping_address == "123 Amoebobacterieae St, Ottawa, Ontario, K2P0V6, Canada"

    def test_unparseable_total_price_is_malformed(self, shopify_order):
        shopify_order["total_price"] = "thirty"
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.ORDERS, shopify_order)

    def test_negative_line_price_is_malformed(self, shopify_order):
        shopify_order["line_items"][0]["price"] = "-1.00"
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.ORDERS, shopify_order)

    @pytest.mark.parametrize(
        "fields,expected",
        [
            ({"cancelled_at": "2024-02-02T00:00:00Z", "fulfillment_status": "fulfilled"}, OrderStatus.CANCELLED),
            ({"fulfillment_status": "fulfilled"}, OrderStatus.SHIPPED),
            ({"fulfillment_status": "partial", "financial_status": "pending"}, OrderStatus.PROCESSING),
            ({"financial_status": "paid"}, OrderStatus.PROCESSING),
            ({"financial_status": "pending"}, OrderStatus.PENDING),
            ({}, OrderStatus.PENDING),
        ],
    )
    def test_order_status(self, fields, expected):
        assert order_status(fields) == expected


class TestBatchMapping:
    """Tests for map_many"""

    def test_collects_failures_without_aborting(self, shopify_product):
        broken = {**shopify_product, "id": None}
        other = {**shopify_product, "id": 1, "title": "Second"}

        batch = map_many(EntityKind.PRODUCTS, [shopify_product, broken, other])

        assert [r.external_id for r in batch.records] == ["632910392", "1"]
        assert len(batch.failures) == 1
        assert "missing id" in batch.failures[0].reason

    def test_non_object_record_is_a_failure(self):
        batch = map_many(EntityKind.CUSTOMERS, ["not-a-record"])
        assert batch.records == []
        assert len(batch.failures) == 1

    def test_custom_events_have_no_external_shape(self):
        with pytest.raises(MalformedRecord):
            to_canonical(EntityKind.CUSTOM_EVENTS, {"id": 1})


class TestCartSummary:
    """Tests for cart value extraction"""

    def test_uses_total_price_when_present(self):
        lines, total = cart_summary({
            "line_items": [{"product_id": 1, "title": "Mug", "quantity": 2, "price": "4.00"}],
            "total_price": "9.50",
        })
        assert total == Decimal("9.50")
        assert lines == [{"product_id": "1", "product_name": "Mug", "quantity": 2, "price": "4.00"}]

    def test_computes_total_from_lines(self):
        _, total = cart_summary({
            "line_items": [
                {"product_id": 1, "quantity": 2, "price": "4.00"},
                {"product_id": 2, "quantity": 1, "price": "1.50"},
            ],
        })
        assert total == Decimal("9.50")


class TestExternalPatch:
    """Tests for canonical -> Shopify request bodies"""

    def test_product_patch_only_contains_given_fields(self):
        patch = to_external_patch(EntityKind.PRODUCTS, ProductUpdate(name="Renamed"))
        assert patch == {"product": {"title": "Renamed"}}

    def test_product_status_and_category(self):
        patch = to_external_patch(
            EntityKind.PRODUCTS,
            {"status": RecordStatus.INACTIVE, "category": UNCATEGORIZED},
        )
        assert patch == {"product": {"status": "draft", "product_type": ""}}

    def test_price_is_not_pushed(self):
        patch = to_external_patch(EntityKind.PRODUCTS, ProductUpdate(price=Decimal("5")))
        assert patch == {"product": {}}

    def test_customer_patch_splits_name(self):
        patch = to_external_patch(EntityKind.CUSTOMERS, {"name": "Ada Lovelace", "phone": "+1555"})
        assert patch == {"customer": {"first_name": "Ada", "last_name": "Lovelace", "phone": "+1555"}}

    def test_order_patch(self):
        patch = to_external_patch(EntityKind.ORDERS, {"customer_email": "a@b.com"})
        assert patch == {"order": {"email": "a@b.com"}}


def test_flatten_address_skips_blank_parts():
    assert flatten_address({"address1": "1 Main St", "address2": "", "city": "Springfield"}) == "1 Main St, Springfield"
    assert flatten_address(None) is None
