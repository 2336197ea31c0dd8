"""Cart service and /api/cart endpoint tests."""

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import cart
from errors import InvalidInput, NotFound


def _quantities(result):
    return {item["product"]: item["quantity"] for item in result["items"]}


def _resolved_quantities(result):
    """Quantities of a cart whose product references were resolved."""
    return {item["product"]["id"]: item["quantity"] for item in result["items"]}


class TestAddItem:
    def test_first_add_creates_cart(self, db, user, make_product):
        product_id = make_product()

        result, created = cart.add_item(db, user.id, product_id, 2)

        assert created is True
        assert result["user"] == user.id
        assert _quantities(result) == {product_id: 2}
        assert db["cart"].count_documents({}) == 1

    def test_adding_same_product_twice_sums_quantities(self, db, user, make_product):
        product_id = make_product()

        cart.add_item(db, user.id, product_id, 2)
        result, created = cart.add_item(db, user.id, product_id, 3)

        assert created is False
        assert len(result["items"]) == 1
        assert _quantities(result) == {product_id: 5}

    def test_new_product_is_appended(self, db, user, make_product):
        first = make_product("Steel Bottle")
        second = make_product("Yoga Mat")

        cart.add_item(db, user.id, first, 1)
        result, _ = cart.add_item(db, user.id, second, 4)

        assert [item["product"] for item in result["items"]] == [first, second]

    def test_concurrent_first_adds_share_one_cart(self, db, user, make_product, monkeypatch):
        product_id = make_product()
        find_cart = cart._find_cart
        lookups = []

        def stale_find_cart(db, user_id):
            # Both requests read before either one writes
            lookups.append(user_id)
            return None if len(lookups) <= 2 else find_cart(db, user_id)

        monkeypatch.setattr(cart, "_find_cart", stale_find_cart)

        _, first_created = cart.add_item(db, user.id, product_id, 2)
        result, second_created = cart.add_item(db, user.id, product_id, 3)

        assert (first_created, second_created) == (True, False)
        assert _quantities(result) == {product_id: 5}
        assert db["cart"].count_documents({}) == 1

        cart.clear(db, user.id)

        assert db["cart"].count_documents({}) == 0
        assert find_cart(db, user.id) is None

    def test_user_is_unique_across_carts(self, db, user, make_product):
        cart.add_item(db, user.id, make_product(), 1)

        with pytest.raises(DuplicateKeyError):
            db["cart"].insert_one({"user": ObjectId(user.id), "items": []})

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_quantity_must_be_positive(self, db, user, make_product, quantity):
        with pytest.raises(InvalidInput):
            cart.add_item(db, user.id, make_product(), quantity)
        assert db["cart"].count_documents({}) == 0

    def test_carts_are_per_user(self, db, user, other_user, make_product):
        product_id = make_product()

        cart.add_item(db, user.id, product_id, 1)
        cart.add_item(db, other_user.id, product_id, 7)

        assert _resolved_quantities(cart.get_cart(db, user.id)) == {product_id: 1}
        assert db["cart"].count_documents({}) == 2


class TestSetQuantity:
    def test_overwrites_quantity(self, db, user, make_product):
        product_id = make_product()
        cart.add_item(db, user.id, product_id, 2)

        result = cart.set_quantity(db, user.id, product_id, 9)

        assert _quantities(result) == {product_id: 9}

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity_is_written_as_given(self, db, user, make_product, quantity):
        product_id = make_product()
        cart.add_item(db, user.id, product_id, 2)

        result = cart.set_quantity(db, user.id, product_id, quantity)

        assert _quantities(result) == {product_id: quantity}
        assert db["cart"].find_one({"user": ObjectId(user.id)})["items"][0]["quantity"] == quantity

    def test_missing_cart(self, db, user, make_product):
        with pytest.raises(NotFound, match="Cart not found"):
            cart.set_quantity(db, user.id, make_product(), 1)

    def test_product_not_in_cart(self, db, user, make_product):
        cart.add_item(db, user.id, make_product("Steel Bottle"), 1)

        with pytest.raises(NotFound, match="Product not in cart"):
            cart.set_quantity(db, user.id, make_product("Yoga Mat"), 1)


class TestRemoveAndClear:
    def test_remove_item(self, db, user, make_product):
        first = make_product("Steel Bottle")
        second = make_product("Yoga Mat")
        cart.add_item(db, user.id, first, 1)
        cart.add_item(db, user.id, second, 1)

        result = cart.remove_item(db, user.id, first)

        assert _quantities(result) == {second: 1}

    def test_removing_absent_product_is_noop(self, db, user, make_product):
        product_id = make_product()
        cart.add_item(db, user.id, product_id, 2)

        result = cart.remove_item(db, user.id, str(ObjectId()))

        assert _quantities(result) == {product_id: 2}

    def test_remove_without_cart(self, db, user, make_product):
        with pytest.raises(NotFound):
            cart.remove_item(db, user.id, make_product())

    def test_clear_deletes_cart_document(self, db, user, make_product):
        cart.add_item(db, user.id, make_product(), 1)

        cart.clear(db, user.id)

        assert db["cart"].count_documents({}) == 0
        assert cart.get_cart(db, user.id) == {"items": []}

    def test_clear_without_cart(self, db, user):
        cart.clear(db, user.id)
        assert cart.get_cart(db, user.id) == {"items": []}


class TestGetCart:
    def test_resolves_products(self, db, user, make_product):
        product_id = make_product("Yoga Mat", price=899.0)
        cart.add_item(db, user.id, product_id, 2)

        result = cart.get_cart(db, user.id)

        item = result["items"][0]
        assert item["quantity"] == 2
        assert item["product"]["id"] == product_id
        assert item["product"]["name"] == "Yoga Mat"
        assert item["product"]["price"] == 899.0

    def test_deleted_product_resolves_to_none(self, db, user, make_product):
        product_id = make_product()
        cart.add_item(db, user.id, product_id, 1)
        db["product"].delete_one({"_id": ObjectId(product_id)})

        result = cart.get_cart(db, user.id)

        assert result["items"][0]["product"] is None


class TestCartEndpoints:
    def test_add_then_merge(self, client, user, make_product, headers_for):
        product_id = make_product()
        headers = headers_for(user)

        first = client.post("/api/cart/add", json={"productId": product_id, "quantity": 2}, headers=headers)
        second = client.post("/api/cart/add", json={"productId": product_id, "quantity": 3}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["items"] == [{"product": product_id, "quantity": 5}]

    def test_cart_example_flow(self, client, user, make_product, headers_for):
        product_a = make_product("Steel Bottle")
        headers = headers_for(user)
        client.post("/api/cart/add", json={"productId": product_a, "quantity": 2}, headers=headers)
        client.post("/api/cart/add", json={"productId": product_a, "quantity": 3}, headers=headers)

        response = client.delete(f"/api/cart/remove/{ObjectId()}", headers=headers)
        assert response.status_code == 200
        assert response.json()["items"] == [{"product": product_a, "quantity": 5}]

        response = client.delete("/api/cart/clear", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"message": "Cart cleared successfully"}

        response = client.get("/api/cart", headers=headers)
        assert response.status_code == 200
        assert response.json() == {"items": []}

    def test_update_missing_cart_is_404(self, client, user, make_product, headers_for):
        response = client.put(
            "/api/cart/update",
            json={"productId": make_product(), "quantity": 4},
            headers=headers_for(user),
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Cart not found"}

    def test_update_quantity(self, client, user, make_product, headers_for):
        product_id = make_product()
        headers = headers_for(user)
        client.post("/api/cart/add", json={"productId": product_id, "quantity": 1}, headers=headers)

        response = client.put("/api/cart/update", json={"productId": product_id, "quantity": 6}, headers=headers)

        assert response.status_code == 200
        assert response.json()["items"] == [{"product": product_id, "quantity": 6}]

    def test_remove_without_cart_is_404(self, client, user, headers_for):
        response = client.delete(f"/api/cart/remove/{ObjectId()}", headers=headers_for(user))
        assert response.status_code == 404

    def test_requires_credentials(self, client):
        response = client.get("/api/cart")
        assert response.status_code == 401
