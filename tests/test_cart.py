"""Tests for the cart."""
from decimal import Decimal

import pytest
from factories import cart_item_payload

from storefront.errors import InvalidInputError, NotFoundError


class TestCart:
    def test_empty_cart(self, cart_service, user_id):
        cart = cart_service.get_cart(user_id)
        assert cart.items == []
        assert cart.total_items == 0
        assert cart.subtotal == Decimal("0.00")

    def test_subtotal_and_count(self, cart_service, user_id):
        cart_service.add_item(user_id, cart_item_payload("12.50", quantity=2))
        cart_service.add_item(user_id, cart_item_payload("35.00"))

        cart = cart_service.get_cart(user_id)
        assert cart.total_items == 3
        assert cart.subtotal == Decimal("60.00")

    def test_same_product_is_merged(self, cart_service, user_id):
        cart_service.add_item(user_id, cart_item_payload(product_id="p1"))
        item = cart_service.add_item(user_id, cart_item_payload(product_id="p1", quantity=2))

        assert item.quantity == 3
        assert len(cart_service.get_cart(user_id).items) == 1

    def test_update_quantity(self, cart_service, user_id):
        item = cart_service.add_item(user_id, cart_item_payload())
        assert cart_service.update_quantity(user_id, item.id, 5).quantity == 5

        with pytest.raises(InvalidInputError):
            cart_service.update_quantity(user_id, item.id, 0)

    def test_remove_and_clear(self, cart_service, user_id):
        item = cart_service.add_item(user_id, cart_item_payload())
        cart_service.add_item(user_id, cart_item_payload())

        cart_service.remove_item(user_id, item.id)
        assert len(cart_service.get_cart(user_id).items) == 1

        with pytest.raises(NotFoundError):
            cart_service.remove_item(user_id, item.id)

        cart_service.clear(user_id)
        assert cart_service.get_cart(user_id).items == []

    def test_carts_are_per_user(self, cart_service, user_id):
        item = cart_service.add_item(user_id, cart_item_payload())
        with pytest.raises(NotFoundError):
            cart_service.update_quantity("someone-else", item.id, 2)
