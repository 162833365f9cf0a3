"""Tests for the product catalog."""
import pytest

import catalog
from errors import InvalidProductError, ProductNotFoundError


class TestProducts:
    def test_create_derives_discount_percentage(self, db, make_product):
        pid = make_product(price=10.0, sale_price=7.5)
        assert catalog.get_product(db, pid)["discount_percentage"] == 25

    @pytest.mark.parametrize("price,sale_price,expected", [(4.0, 3.5, 13), (8.0, 7.0, 13), (10.0, 9.95, 1)])
    def test_discount_rounds_half_up(self, price, sale_price, expected):
        assert catalog.discount_percentage(price, sale_price) == expected

    def test_create_without_sale_has_no_discount(self, db, make_product):
        assert catalog.get_product(db, make_product())["discount_percentage"] is None

    def test_sale_price_must_be_lower(self, make_product):
        with pytest.raises(InvalidProductError):
            make_product(price=5.0, sale_price=6.0)

    def test_update_revalidates_merged_record(self, db, make_product):
        pid = make_product(price=10.0, sale_price=8.0)
        with pytest.raises(InvalidProductError):
            catalog.update_product(db, pid, {"price": 7.0})

        updated = catalog.update_product(db, pid, {"price": 16.0})
        assert updated["discount_percentage"] == 50

        cleared = catalog.update_product(db, pid, {"sale_price": None})
        assert cleared["sale_price"] is None
        assert cleared["discount_percentage"] is None

    def test_unknown_ids(self, db):
        with pytest.raises(ProductNotFoundError):
            catalog.get_product(db, "64b000000000000000000000")
        with pytest.raises(ProductNotFoundError):
            catalog.update_product(db, "nope", {"stock": 1})
        with pytest.raises(ProductNotFoundError):
            catalog.delete_product(db, "nope")


class TestListProducts:
    @pytest.fixture(autouse=True)
    def products(self, make_product):
        make_product(name="Organic Kale", category="Vegetables", is_organic=True)
        make_product(name="Carrots", category="Vegetables", description="Sweet and crunchy", is_featured=True)
        make_product(name="Whole Milk", category="Dairy")

    def test_all(self, db):
        assert len(catalog.list_products(db)) == 3

    def test_category(self, db):
        names = {p["name"] for p in catalog.list_products(db, category="Vegetables")}
        assert names == {"Organic Kale", "Carrots"}

    def test_search_matches_name_and_description_case_insensitively(self, db):
        assert [p["name"] for p in catalog.list_products(db, search="MILK")] == ["Whole Milk"]
        assert [p["name"] for p in catalog.list_products(db, search="crunchy")] == ["Carrots"]

    def test_search_is_literal(self, db):
        assert catalog.list_products(db, search=".*") == []

    def test_featured_and_organic(self, db):
        assert [p["name"] for p in catalog.list_products(db, featured_only=True)] == ["Carrots"]
        assert [p["name"] for p in catalog.list_products(db, organic_only=True)] == ["Organic Kale"]


class TestReviews:
    def test_review_updates_rating_aggregate(self, db, user, make_product):
        pid = make_product()
        catalog.add_review(db, user, pid, 5, "Lovely")
        catalog.add_review(db, user, pid, 4)

        product = catalog.get_product(db, pid)
        assert product["rating"] == 4.5
        assert product["review_count"] == 2

        reviews = catalog.list_reviews(db, pid)
        assert len(reviews) == 2
        assert all(r["is_verified"] for r in reviews)
        assert reviews[0]["user_name"] == user["name"]

    def test_review_unknown_product(self, db, user):
        with pytest.raises(ProductNotFoundError):
            catalog.add_review(db, user, "64b000000000000000000000", 3)


class TestRecommendations:
    def test_same_category_best_rated_first(self, db, make_product):
        target = make_product(name="Apples", category="Fruits")
        make_product(name="Pears", category="Fruits", rating=3.0)
        make_product(name="Mangoes", category="Fruits", rating=4.8)
        make_product(name="Milk", category="Dairy", rating=5.0)

        names = [p["name"] for p in catalog.recommendations(db, target)]
        assert names == ["Mangoes", "Pears"]


class TestSeed:
    def test_seeds_once(self, db):
        assert catalog.seed_products(db) == len(catalog.DEMO_PRODUCTS)
        assert catalog.seed_products(db) == 0
        assert db["product"].count_documents({}) == len(catalog.DEMO_PRODUCTS)
