import pytest

import cart
from errors import InsufficientStock, InvalidArgument, NotFound


@pytest.fixture()
def products(make_product):
    return {
        "mug": make_product("Mug", price=12.5, stock=10),
        "tea": make_product("Tea", price=4.99, stock=3),
        "gone": make_product("Gone", price=1.0, stock=100, status="retired"),
    }


def _assert_total_consistent(doc):
    expected = round(sum(i["price"] * i["quantity"] for i in doc["items"]), 2)
    assert doc["total_amount"] == pytest.approx(expected)


class TestCartAggregate:
    def test_get_or_create_is_lazy_and_stable(self, mongo, user):
        uid, _ = user
        assert mongo["cart"].count_documents({}) == 0
        first = cart.get_or_create_cart(uid)
        second = cart.get_or_create_cart(uid)
        assert first["_id"] == second["_id"]
        assert first["items"] == []
        assert mongo["cart"].count_documents({"user_id": uid}) == 1

    def test_add_uses_current_price(self, user, products):
        uid, _ = user
        doc = cart.add_item(uid, products["mug"], 2)
        assert doc["items"] == [{"product_id": products["mug"], "quantity": 2, "price": 12.5}]
        assert doc["total_amount"] == 25.0

    def test_add_merges_existing_line(self, user, products):
        uid, _ = user
        cart.add_item(uid, products["mug"], 2)
        doc = cart.add_item(uid, products["mug"], 3)
        assert len(doc["items"]) == 1
        assert doc["items"][0]["quantity"] == 5
        assert doc["total_amount"] == 62.5

    def test_total_tracks_every_mutation(self, user, products):
        uid, _ = user
        _assert_total_consistent(cart.add_item(uid, products["mug"], 1))
        _assert_total_consistent(cart.add_item(uid, products["tea"], 3))
        _assert_total_consistent(cart.update_item(uid, products["mug"], 4))
        _assert_total_consistent(cart.remove_item(uid, products["tea"]))
        doc = cart.add_item(uid, products["tea"], 1)
        _assert_total_consistent(doc)
        assert doc["total_amount"] == pytest.approx(4 * 12.5 + 4.99)

    def test_cumulative_quantity_over_stock_leaves_cart_unchanged(self, user, products):
        uid, _ = user
        before = cart.add_item(uid, products["tea"], 2)
        with pytest.raises(InsufficientStock):
            cart.add_item(uid, products["tea"], 2)
        after = cart.get_or_create_cart(uid)
        assert after["items"] == before["items"]
        assert after["total_amount"] == before["total_amount"]

    def test_add_retired_or_missing_product(self, user, products):
        uid, _ = user
        with pytest.raises(NotFound):
            cart.add_item(uid, products["gone"], 1)
        with pytest.raises(NotFound):
            cart.add_item(uid, "65f0c0ffee00000000000001", 1)

    def test_update_rules(self, user, products):
        uid, _ = user
        cart.add_item(uid, products["mug"], 1)
        with pytest.raises(InvalidArgument):
            cart.update_item(uid, products["mug"], 0)
        with pytest.raises(InsufficientStock):
            cart.update_item(uid, products["mug"], 11)
        with pytest.raises(NotFound):
            cart.update_item(uid, products["tea"], 1)

    def test_remove_absent_item_is_a_no_op(self, user, products):
        uid, _ = user
        cart.add_item(uid, products["mug"], 1)
        doc = cart.remove_item(uid, products["tea"])
        assert [i["product_id"] for i in doc["items"]] == [products["mug"]]

    def test_clear(self, user, products):
        uid, _ = user
        cart.add_item(uid, products["mug"], 1)
        doc = cart.clear_cart(uid)
        assert doc["items"] == []
        assert doc["total_amount"] == 0


class TestCartApi:
    def test_requires_login(self, client):
        assert client.get("/api/cart").status_code == 401

    def test_get_creates_empty_cart(self, client, user):
        uid, headers = user
        response = client.get("/api/cart", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["cart"]["userId"] == uid
        assert body["cart"]["items"] == []
        assert body["cart"]["totalAmount"] == 0

    def test_add_populates_product(self, client, user, products):
        _, headers = user
        response = client.post("/api/cart/add", json={"productId": products["mug"], "quantity": 2}, headers=headers)
        assert response.status_code == 200
        line = response.json()["cart"]["items"][0]
        assert line["productId"] == products["mug"]
        assert line["product"]["name"] == "Mug"
        assert response.json()["cart"]["totalAmount"] == 25.0

    def test_add_defaults_to_one(self, client, user, products):
        _, headers = user
        response = client.post("/api/cart/add", json={"productId": products["mug"]}, headers=headers)
        assert response.json()["cart"]["items"][0]["quantity"] == 1

    def test_add_over_stock(self, client, user, products):
        _, headers = user
        response = client.post("/api/cart/add", json={"productId": products["tea"], "quantity": 4}, headers=headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Not enough stock available"}

    def test_add_zero_quantity_rejected(self, client, user, products):
        _, headers = user
        response = client.post("/api/cart/add", json={"productId": products["mug"], "quantity": 0}, headers=headers)
        assert response.status_code == 400

    def test_update_below_one(self, client, user, products):
        _, headers = user
        client.post("/api/cart/add", json={"productId": products["mug"]}, headers=headers)
        response = client.put("/api/cart/update", json={"productId": products["mug"], "quantity": 0}, headers=headers)
        assert response.status_code == 400
        assert response.json() == {"error": "Quantity must be at least 1"}

    def test_update_item_not_in_cart(self, client, user, products):
        _, headers = user
        response = client.put("/api/cart/update", json={"productId": products["mug"], "quantity": 1}, headers=headers)
        assert response.status_code == 404
        assert response.json() == {"error": "Item not found in cart"}

    def test_remove_and_clear(self, client, user, products):
        _, headers = user
        client.post("/api/cart/add", json={"productId": products["mug"]}, headers=headers)
        client.post("/api/cart/add", json={"productId": products["tea"]}, headers=headers)

        response = client.delete(f"/api/cart/remove/{products['mug']}", headers=headers)
        assert [i["productId"] for i in response.json()["cart"]["items"]] == [products["tea"]]
        assert response.json()["cart"]["totalAmount"] == 4.99

        response = client.delete("/api/cart/clear", headers=headers)
        assert response.json()["cart"]["items"] == []
        assert response.json()["cart"]["totalAmount"] == 0

    def test_carts_are_per_user(self, client, user, other_user, products):
        _, headers = user
        _, other_headers = other_user
        client.post("/api/cart/add", json={"productId": products["mug"]}, headers=headers)
        assert client.get("/api/cart", headers=other_headers).json()["cart"]["items"] == []
