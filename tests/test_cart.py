"""Tests for cart consolidation and cart views."""
import mongomock
import pytest
from pymongo.errors import DuplicateKeyError

import cart
import catalog
from errors import CartItemNotFoundError, InvalidQuantityError, ProductNotFoundError


class TestAddToCart:
    def test_repeat_add_consolidates(self, db, user, make_product):
        pid = make_product()
        cart.add_to_cart(db, user["id"], pid, 2)
        line = cart.add_to_cart(db, user["id"], pid, 3)

        assert line["quantity"] == 5
        assert db["cart"].count_documents({"user_id": user["id"]}) == 1

    def test_lost_insert_race_falls_back_to_increment(self, db, user, make_product, monkeypatch):
        pid = make_product()
        real_update = mongomock.collection.Collection.find_one_and_update

        def concurrent_first_add(collection, filter, update, *args, **kwargs):
            if kwargs.get("upsert"):
                # another request inserts the line between our lookup and our insert
                collection.insert_one({**filter, "quantity": 2})
                raise DuplicateKeyError("E11000 duplicate key error")
            return real_update(collection, filter, update, *args, **kwargs)

        monkeypatch.setattr(mongomock.collection.Collection, "find_one_and_update", concurrent_first_add)
        line = cart.add_to_cart(db, user["id"], pid, 3)

        assert line["quantity"] == 5
        assert db["cart"].count_documents({"user_id": user["id"]}) == 1

    def test_distinct_products_get_distinct_lines(self, db, user, make_product):
        cart.add_to_cart(db, user["id"], make_product(name="Apples"), 1)
        cart.add_to_cart(db, user["id"], make_product(name="Pears"), 1)
        assert db["cart"].count_documents({"user_id": user["id"]}) == 2

    def test_carts_are_per_user(self, db, make_user, make_product):
        pid = make_product()
        alice, bob = make_user(), make_user()
        cart.add_to_cart(db, alice["id"], pid, 2)
        cart.add_to_cart(db, bob["id"], pid, 1)

        assert cart.cart_lines(db, alice["id"])[0]["quantity"] == 2
        assert cart.cart_lines(db, bob["id"])[0]["quantity"] == 1

    def test_snapshot_is_stored(self, db, user, make_product):
        pid = make_product(name="Mangoes", price=4.0, sale_price=3.5, image_url="http://img/m.png")
        line = cart.add_to_cart(db, user["id"], pid)
        assert line["name"] == "Mangoes"
        assert line["price"] == 4.0
        assert line["sale_price"] == 3.5
        assert line["image_url"] == "http://img/m.png"
        assert line["product_id"] == pid

    def test_no_stock_bound_on_add(self, db, user, make_product):
        pid = make_product(stock=1)
        line = cart.add_to_cart(db, user["id"], pid, 5)
        assert line["quantity"] == 5

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_rejects_invalid_quantity(self, db, user, make_product, quantity):
        pid = make_product()
        with pytest.raises(InvalidQuantityError):
            cart.add_to_cart(db, user["id"], pid, quantity)
        assert db["cart"].count_documents({}) == 0

    def test_unknown_product(self, db, user):
        with pytest.raises(ProductNotFoundError):
            cart.add_to_cart(db, user["id"], "64b000000000000000000000", 1)
        with pytest.raises(ProductNotFoundError):
            cart.add_to_cart(db, user["id"], "not-an-id", 1)


class TestUpdateAndRemove:
    def test_set_quantity_is_absolute(self, db, user, make_product):
        line = cart.add_to_cart(db, user["id"], make_product(), 4)
        updated = cart.set_cart_quantity(db, user["id"], line["id"], 2)
        assert updated["quantity"] == 2

    def test_set_quantity_rejects_zero(self, db, user, make_product):
        line = cart.add_to_cart(db, user["id"], make_product(), 4)
        with pytest.raises(InvalidQuantityError):
            cart.set_cart_quantity(db, user["id"], line["id"], 0)
        assert cart.cart_lines(db, user["id"])[0]["quantity"] == 4

    def test_cannot_touch_another_users_line(self, db, make_user, make_product):
        alice, bob = make_user(), make_user()
        line = cart.add_to_cart(db, alice["id"], make_product(), 1)
        with pytest.raises(CartItemNotFoundError):
            cart.set_cart_quantity(db, bob["id"], line["id"], 3)
        with pytest.raises(CartItemNotFoundError):
            cart.remove_cart_item(db, bob["id"], line["id"])

    def test_remove_item(self, db, user, make_product):
        line = cart.add_to_cart(db, user["id"], make_product(), 1)
        cart.remove_cart_item(db, user["id"], line["id"])
        assert cart.cart_lines(db, user["id"]) == []
        with pytest.raises(CartItemNotFoundError):
            cart.remove_cart_item(db, user["id"], line["id"])

    def test_clear_cart(self, db, user, make_product):
        cart.add_to_cart(db, user["id"], make_product(name="A"), 1)
        cart.add_to_cart(db, user["id"], make_product(name="B"), 1)
        assert cart.clear_cart(db, user["id"]) == 2
        assert cart.cart_lines(db, user["id"]) == []


class TestCartView:
    def test_totals_use_current_catalog_price(self, db, user, make_product):
        pid = make_product(price=100.0, sale_price=80.0)
        cart.add_to_cart(db, user["id"], pid, 2)
        cart.add_to_cart(db, user["id"], make_product(name="Honey", price=50.0), 1)

        view = cart.cart_view(db, user["id"])
        assert view["totals"]["subtotal"] == 210.0
        assert view["totals"]["total"] == 227.85
        assert view["totals"]["savings"] == 40.0
        assert view["item_count"] == 3

        catalog.update_product(db, pid, {"sale_price": 90.0})
        view = cart.cart_view(db, user["id"])
        assert view["totals"]["subtotal"] == 230.0

    def test_deleted_product_flagged_and_excluded(self, db, user, make_product):
        gone = make_product(name="Gone", price=30.0)
        cart.add_to_cart(db, user["id"], gone, 1)
        cart.add_to_cart(db, user["id"], make_product(name="Kept", price=20.0), 1)
        catalog.delete_product(db, gone)

        view = cart.cart_view(db, user["id"])
        by_name = {i["name"]: i for i in view["items"]}
        assert by_name["Gone"]["available"] is False
        assert by_name["Kept"]["available"] is True
        assert view["totals"]["subtotal"] == 20.0
        assert view["totals"]["delivery_fee"] == 3.99
