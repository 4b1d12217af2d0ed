"""
Tests for server-side carts and order placement.
"""

import re

import pytest

import cart
import catalog

CHECKOUT_FORM = {
    "name": "Ada Lovelace",
    "email": "Ada@Example.com",
    "address": "12 Analytical Row",
    "city": "London",
    "zip": "12345",
    "cardName": "Ada Lovelace",
    "cardNumber": "4242424242424242",
    "expDate": "12/29",
    "cvc": "123",
}


@pytest.fixture
def product(db, sample_product):
    product_id = catalog.add_product(db, sample_product)
    return catalog.get_product_by_id(db, product_id)


class TestCart:
    """Cart line bookkeeping."""

    def test_empty_cart(self, db):
        assert cart.get_cart(db, "nope") == {"token": "nope", "items": [], "count": 0, "total": 0.0}

    def test_add_merges_same_line(self, db, product):
        cart.add_to_cart(db, "t1", product, "S-Red", "S / Red", 1)
        state = cart.add_to_cart(db, "t1", product, "S-Red", "S / Red", 2)

        assert len(state["items"]) == 1
        line = state["items"][0]
        assert line["id"] == f"{product['id']}-S-Red"
        assert line["quantity"] == 3
        assert line["price"] == 21.5
        assert line["image"] == "https://cdn.example.com/tee-red.jpg"
        assert state["count"] == 3
        assert state["total"] == 64.5

    def test_variants_are_separate_lines(self, db, product):
        cart.add_to_cart(db, "t1", product, "S-Red")
        cart.add_to_cart(db, "t1", product, "M-Blue")
        state = cart.add_to_cart(db, "t1", product)

        assert [item["id"] for item in state["items"]] == [
            f"{product['id']}-S-Red",
            f"{product['id']}-M-Blue",
            product["id"],
        ]
        assert state["total"] == 63.5

    def test_update_quantity_and_remove(self, db, product):
        state = cart.add_to_cart(db, "t1", product)
        line_id = state["items"][0]["id"]

        state = cart.update_quantity(db, "t1", line_id, 5)
        assert state["count"] == 5

        state = cart.update_quantity(db, "t1", line_id, 0)
        assert state["items"] == []

        cart.add_to_cart(db, "t1", product)
        assert cart.remove_from_cart(db, "t1", line_id)["count"] == 0

    def test_carts_are_isolated_by_token(self, db, product):
        cart.add_to_cart(db, "a", product)
        assert cart.get_cart(db, "b")["items"] == []

    def test_clear_cart(self, db, product):
        cart.add_to_cart(db, "t1", product, quantity=2)
        assert cart.clear_cart(db, "t1")["count"] == 0
        assert cart.get_cart(db, "t1")["items"] == []


class TestPlaceOrder:
    """Simulated checkout."""

    def test_place_order_records_and_clears(self, db, product):
        cart.add_to_cart(db, "t1", product, "S-Red", "S / Red", 2)

        order = cart.place_order(db, "t1", CHECKOUT_FORM, currency="EUR")

        assert re.match(r"^CC-[0-9A-F]{10}$", order["order_id"])
        assert order["subtotal"] == 43.0
        assert order["total_items"] == 2
        assert order["currency"] == "EUR"
        assert order["email"] == "ada@example.com"
        assert order["payment_method"] == "SIMULATED"
        assert order["card_last4"] == "4242"
        assert "cardNumber" not in order and "cvc" not in order
        assert db.orders.count_documents({}) == 1
        assert cart.get_cart(db, "t1")["items"] == []

        serialized = cart.serialize_order(order)
        assert serialized["id"] == str(order["_id"])
        assert serialized["created_at"].endswith("Z")

    def test_place_order_with_empty_cart(self, db):
        with pytest.raises(cart.EmptyCartError, match="Your cart is empty."):
            cart.place_order(db, "empty", CHECKOUT_FORM)
        assert db.orders.count_documents({}) == 0

    def test_order_uses_current_catalog_prices(self, db, product):
        cart.add_to_cart(db, "t1", product, "S-Red", "S / Red", 2)
        inventory = [{**item, "price": 30.0} if item["id"] == "S-Red" else item for item in product["inventory"]]
        catalog.update_product(db, product["id"], {"inventory": inventory})

        order = cart.place_order(db, "t1", CHECKOUT_FORM)

        assert order["items"][0]["price"] == 30.0
        assert order["subtotal"] == 60.0

    def test_drafted_and_deleted_products_are_dropped(self, db, product, sample_product):
        other_id = catalog.add_product(db, {**sample_product, "name": "Hoodie", "price": 50})
        gone_id = catalog.add_product(db, {**sample_product, "name": "Cap", "price": 10})
        cart.add_to_cart(db, "t1", product, quantity=1)
        cart.add_to_cart(db, "t1", catalog.get_product_by_id(db, other_id), quantity=1)
        cart.add_to_cart(db, "t1", catalog.get_product_by_id(db, gone_id), quantity=1)
        catalog.update_product(db, other_id, {"status": "draft"})
        catalog.delete_product(db, gone_id)

        order = cart.place_order(db, "t1", CHECKOUT_FORM)

        assert [item["productId"] for item in order["items"]] == [product["id"]]
        assert order["subtotal"] == 20.0
        assert order["total_items"] == 1

    def test_unavailable_cart_is_not_ordered(self, db, product):
        cart.add_to_cart(db, "t1", product)
        catalog.update_product(db, product["id"], {"status": "draft"})

        with pytest.raises(cart.EmptyCartError, match="no longer available"):
            cart.place_order(db, "t1", CHECKOUT_FORM)
        assert db.orders.count_documents({}) == 0
