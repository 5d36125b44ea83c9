"""
Unit tests for the cart lifecycle engine
"""
import pytest
import requests
from decimal import Decimal
from unittest.mock import Mock

from sqlalchemy import select, func

from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotFound, InvalidState, AlreadyProcessed, ConcurrentModification
from storefront.domain.events import OrderAction

from conftest import event_types, published_order_events


class TestCreateCart:
    def test_creates_active_cart(self, cart_service, publisher, user):
        cart = cart_service.create_or_get_active_cart(user.id)

        assert cart["status"] == "ACTIVE"
        assert cart["user_id"] == user.id
        assert cart["items"] == []
        assert cart["total_price"] == Decimal("0.00")
        assert event_types(publisher) == ["CART_CREATED"]

    def test_returns_existing_active_cart(self, cart_service, publisher, user):
        first = cart_service.create_or_get_active_cart(user.id)
        second = cart_service.create_or_get_active_cart(user.id)

        assert first["cart_id"] == second["cart_id"]
        assert event_types(publisher) == ["CART_CREATED"]

    def test_unknown_user(self, cart_service, publisher):
        with pytest.raises(NotFound):
            cart_service.create_or_get_active_cart(999)
        publisher.publish_order_event.assert_not_called()

    def test_new_cart_after_checkout(self, cart_service, user):
        cart = cart_service.create_or_get_active_cart(user.id)
        cart_service.add_item(cart["cart_id"], 1, 1)
        cart_service.start_checkout(cart["cart_id"])

        fresh = cart_service.create_or_get_active_cart(user.id)

        assert fresh["cart_id"] != cart["cart_id"]
        assert fresh["status"] == "ACTIVE"


class TestItems:
    @pytest.fixture
    def cart_id(self, cart_service, user):
        return cart_service.create_or_get_active_cart(user.id)["cart_id"]

    def test_add_new_item(self, cart_service, publisher, cart_id):
        cart = cart_service.add_item(cart_id, 1, 2)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["product_name"] == "Keyboard"
        assert cart["items"][0]["quantity"] == 2
        assert cart["total_items"] == 2
        assert cart["total_price"] == Decimal("40.00")
        assert event_types(publisher)[-1] == "ITEM_ADDED"

    def test_add_same_product_merges_lines(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 2)
        cart = cart_service.add_item(cart_id, 1, 3)

        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 5
        last = published_order_events(publisher)[-1]
        assert last.action == OrderAction.ITEM_QUANTITY_UPDATED
        assert last.payload["quantity"] == 5

    def test_add_unknown_product(self, cart_service, db, cart_id):
        with pytest.raises(NotFound):
            cart_service.add_item(cart_id, 404, 1)

        count = db.execute(select(func.count()).select_from(CartItemModel)).scalar_one()
        assert count == 0

    def test_add_rejects_zero_quantity(self, cart_service, cart_id):
        with pytest.raises(ValueError):
            cart_service.add_item(cart_id, 1, 0)

    def test_add_to_missing_cart(self, cart_service):
        with pytest.raises(NotFound):
            cart_service.add_item(12345, 1, 1)

    def test_update_quantity_sets_value(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 2, 5)
        cart = cart_service.update_item_quantity(cart_id, 2, 1)

        assert cart["items"][0]["quantity"] == 1
        assert cart["total_price"] == Decimal("15.00")
        assert event_types(publisher)[-1] == "ITEM_QUANTITY_UPDATED"

    def test_update_missing_item(self, cart_service, cart_id):
        with pytest.raises(NotFound):
            cart_service.update_item_quantity(cart_id, 1, 3)

    def test_update_rejects_zero_quantity(self, cart_service, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        with pytest.raises(ValueError):
            cart_service.update_item_quantity(cart_id, 1, 0)

    def test_remove_item(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.add_item(cart_id, 2, 1)

        cart = cart_service.remove_item(cart_id, 1)

        assert [i["product_id"] for i in cart["items"]] == [2]
        assert cart["total_price"] == Decimal("15.00")
        assert event_types(publisher)[-1] == "ITEM_REMOVED"

    def test_remove_missing_item(self, cart_service, cart_id):
        with pytest.raises(NotFound):
            cart_service.remove_item(cart_id, 3)

    def test_clear_cart(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.add_item(cart_id, 3, 4)

        cart = cart_service.clear_cart(cart_id)

        assert cart["items"] == []
        assert cart["total_items"] == 0
        assert cart["total_price"] == Decimal("0.00")
        assert event_types(publisher)[-1] == "CART_CLEARED"

    def test_totals_follow_current_catalog_price(self, cart_service, products, cart_id):
        cart_service.add_item(cart_id, 1, 2)
        products[1]["price"] = "25.00"

        cart = cart_service.get_cart(cart_id)

        assert cart["items"][0]["product_price"] == Decimal("25.00")
        assert cart["total_price"] == Decimal("50.00")

    def test_delisted_product_does_not_fail_write(self, cart_service, products, db, cart_id):
        cart_service.add_item(cart_id, 1, 2)
        del products[1]

        cart = cart_service.add_item(cart_id, 2, 1)

        lines = {i["product_id"]: i for i in cart["items"]}
        assert lines[1]["available"] is False
        assert lines[1]["product_price"] is None
        assert lines[1]["subtotal"] == Decimal("0.00")
        assert lines[2]["available"] is True
        assert cart["total_price"] == Decimal("15.00")
        count = db.execute(select(func.count()).select_from(CartItemModel)).scalar_one()
        assert count == 2

    def test_cart_readable_with_delisted_product(self, cart_service, products, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.add_item(cart_id, 3, 2)
        del products[3]

        cart = cart_service.get_cart(cart_id)
        summary = cart_service.get_cart_summary(cart_id)

        assert [i["available"] for i in cart["items"]] == [True, False]
        assert cart["total_price"] == Decimal("20.00")
        assert summary["total_items"] == 3

    def test_catalog_unreachable_after_commit(self, cart_service, product_client, db, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        product_client.fetch_product.side_effect = requests.ConnectionError("catalog down")

        cart = cart_service.update_item_quantity(cart_id, 1, 4)

        assert cart["items"][0]["available"] is False
        assert cart["items"][0]["quantity"] == 4
        assert cart["total_price"] == Decimal("0.00")
        assert db.execute(select(CartItemModel.quantity)).scalar_one() == 4

    def test_every_write_bumps_version(self, cart_service, db, cart_id):
        from storefront.data.models.cart import CartModel

        cart_service.add_item(cart_id, 1, 1)
        cart_service.update_item_quantity(cart_id, 1, 2)

        assert db.get(CartModel, cart_id).version == 3

    def test_concurrent_write_is_rejected(self, cart_service, db, cart_id):
        cart_service.repo.update_cart_version = Mock(return_value=0)

        with pytest.raises(ConcurrentModification):
            cart_service.add_item(cart_id, 1, 1)

        count = db.execute(select(func.count()).select_from(CartItemModel)).scalar_one()
        assert count == 0

    def test_items_frozen_outside_active(self, cart_service, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.start_checkout(cart_id)

        with pytest.raises(InvalidState):
            cart_service.add_item(cart_id, 2, 1)
        with pytest.raises(InvalidState):
            cart_service.clear_cart(cart_id)


class TestCartLifecycle:
    @pytest.fixture
    def cart_id(self, cart_service, user):
        return cart_service.create_or_get_active_cart(user.id)["cart_id"]

    def test_get_missing_cart(self, cart_service):
        with pytest.raises(NotFound):
            cart_service.get_cart(777)

    def test_active_cart_by_user(self, cart_service, user, cart_id):
        assert cart_service.get_active_cart_by_user(user.id)["cart_id"] == cart_id

    def test_no_active_cart_by_user(self, cart_service, other_user):
        with pytest.raises(NotFound):
            cart_service.get_active_cart_by_user(other_user.id)

    def test_summary(self, cart_service, cart_id):
        cart_service.add_item(cart_id, 1, 2)
        cart_service.add_item(cart_id, 2, 1)

        summary = cart_service.get_cart_summary(cart_id)

        assert summary["item_count"] == 2
        assert summary["total_items"] == 3
        assert summary["total_price"] == Decimal("55.00")

    def test_delete_cart(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.delete_cart(cart_id)

        with pytest.raises(NotFound):
            cart_service.get_cart(cart_id)
        assert event_types(publisher)[-1] == "CART_DELETED"

    def test_transition_is_unconditional(self, cart_service, cart_id):
        cart = cart_service.transition_status(cart_id, "abandoned")
        assert cart["status"] == "ABANDONED"

        cart = cart_service.transition_status(cart_id, "ACTIVE")
        assert cart["status"] == "ACTIVE"

    def test_transition_rejects_unknown_status(self, cart_service, cart_id):
        with pytest.raises(ValueError):
            cart_service.transition_status(cart_id, "SHIPPED")

    def test_start_checkout_empty_cart(self, cart_service, cart_id):
        with pytest.raises(InvalidState):
            cart_service.start_checkout(cart_id)

    def test_start_checkout(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)

        cart = cart_service.start_checkout(cart_id)

        assert cart["status"] == "CHECKOUT"
        last = published_order_events(publisher)[-1]
        assert last.event_type == "CHECKOUT_STARTED"
        assert last.total_amount == Decimal("20.00")

    def test_complete_checkout(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.start_checkout(cart_id)

        cart = cart_service.complete_checkout(cart_id, "cs_test_1")

        assert cart["status"] == "COMPLETED"
        assert event_types(publisher)[-1] == "ORDER_COMPLETED"

    def test_complete_checkout_twice_publishes_once(self, cart_service, publisher, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.complete_checkout(cart_id, "cs_test_1")
        cart_service.complete_checkout(cart_id, "cs_test_1")

        assert event_types(publisher).count("ORDER_COMPLETED") == 1

    def test_start_checkout_abandoned_cart(self, cart_service, db, cart_id):
        from storefront.data.models.cart import CartModel

        cart_service.add_item(cart_id, 1, 1)
        cart_service.transition_status(cart_id, "ABANDONED")

        with pytest.raises(InvalidState):
            cart_service.start_checkout(cart_id)
        assert db.get(CartModel, cart_id).status == "ABANDONED"

    def test_start_checkout_empty_completed_cart(self, cart_service, cart_id):
        cart_service.transition_status(cart_id, "COMPLETED")

        with pytest.raises(InvalidState):
            cart_service.start_checkout(cart_id)

    def test_start_checkout_completed_cart(self, cart_service, cart_id):
        cart_service.add_item(cart_id, 1, 1)
        cart_service.complete_checkout(cart_id, "cs_test_1")

        with pytest.raises(AlreadyProcessed):
            cart_service.start_checkout(cart_id)
