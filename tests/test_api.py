"""End-to-end tests through the HTTP API on SQLite."""
from factories import address_data, card_data

from storefront.gateway import TEST_CARD_NUMBERS


def _add_address(client, headers, address_type, **overrides):
    resp = client.post("/api/users/me/addresses", json=address_data(address_type, **overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _add_card(client, headers, number=TEST_CARD_NUMBERS["visa"], **overrides):
    resp = client.post("/api/users/me/payment-methods", json=card_data(number, **overrides), headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _fill_cart(client, headers, price="20.00", quantity=3):
    resp = client.post(
        "/api/cart/items",
        json={"product_id": "tote-1", "name": "Canvas Tote", "price": price, "quantity": quantity},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text


def _checkout_to_review(client, headers, card_id):
    shipping = _add_address(client, headers, "shipping")
    billing = _add_address(client, headers, "billing")

    session = client.post("/api/checkout", headers=headers).json()
    client.put(
        f"/api/checkout/{session['id']}/addresses",
        json={"shipping_address_id": shipping["id"], "billing_address_id": billing["id"]},
        headers=headers,
    )
    resp = client.put(
        f"/api/checkout/{session['id']}/payment-method",
        json={"payment_method_id": card_id},
        headers=headers,
    )
    assert resp.json()["step"] == "review"
    return session["id"]


class TestHealth:
    def test_health_and_ping(self, client):
        assert client.get("/health").json()["status"] == "healthy"
        assert client.get("/ping").json() == {"ping": "pong"}


class TestAuth:
    def test_register_login_me_logout(self, client):
        resp = client.post("/api/auth/register", json={"email": "jane@example.com", "password": "correct-horse"})
        assert resp.status_code == 201

        resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "correct-horse"})
        assert resp.status_code == 200
        assert "access_token" in resp.cookies

        me = client.get("/api/auth/me")
        assert me.json()["email"] == "jane@example.com"

        client.post("/api/auth/logout")
        client.cookies.clear()
        assert client.get("/api/auth/me").status_code == 401

    def test_duplicate_email(self, client):
        payload = {"email": "jane@example.com", "password": "correct-horse"}
        client.post("/api/auth/register", json=payload)
        assert client.post("/api/auth/register", json=payload).status_code == 400

    def test_wrong_password(self, client):
        client.post("/api/auth/register", json={"email": "jane@example.com", "password": "correct-horse"})
        resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "wrong"})
        assert resp.status_code == 401

    def test_disabled_user_cannot_log_in(self, client):
        from storefront.database import SessionLocal
        from storefront.models import User

        client.post("/api/auth/register", json={"email": "jane@example.com", "password": "correct-horse"})
        db = SessionLocal()
        try:
            db.query(User).filter(User.email == "jane@example.com").update({"is_active": False})
            db.commit()
        finally:
            db.close()

        resp = client.post("/api/auth/login", json={"email": "jane@example.com", "password": "correct-horse"})
        assert resp.status_code == 403

    def test_admin_role_comes_from_the_database(self, client):
        from storefront.security import create_token

        resp = client.post("/api/auth/register", json={"email": "jane@example.com", "password": "correct-horse"})
        forged = {"Authorization": f"Bearer {create_token(resp.json()['user']['id'], 'admin')}"}

        assert client.get("/api/auth/me", headers=forged).json()["role"] == "user"
        assert client.post("/api/admin/payments/reconcile", headers=forged).status_code == 403

    def test_routes_require_auth(self, client):
        assert client.get("/api/users/me/addresses").status_code == 401
        assert client.get("/api/cart").status_code == 401


class TestAddresses:
    def test_single_default_per_type(self, client, auth_headers):
        first = _add_address(client, auth_headers, "shipping", is_default=True)
        second = _add_address(client, auth_headers, "shipping", is_default=True)

        addresses = client.get("/api/users/me/addresses", headers=auth_headers).json()
        defaults = [a["id"] for a in addresses if a["is_default"]]
        assert defaults == [second["id"]]

        client.post(f"/api/users/me/addresses/{first['id']}/set-default", headers=auth_headers)
        addresses = client.get("/api/users/me/addresses", headers=auth_headers).json()
        assert [a["id"] for a in addresses if a["is_default"]] == [first["id"]]

    def test_update_and_delete(self, client, auth_headers):
        address = _add_address(client, auth_headers, "shipping")

        resp = client.patch(f"/api/users/me/addresses/{address['id']}", json={"city": "Oakland"}, headers=auth_headers)
        assert resp.json()["city"] == "Oakland"

        assert client.delete(f"/api/users/me/addresses/{address['id']}", headers=auth_headers).status_code == 200
        assert client.delete(f"/api/users/me/addresses/{address['id']}", headers=auth_headers).status_code == 404

    def test_validation_error(self, client, auth_headers):
        resp = client.post(
            "/api/users/me/addresses",
            json=address_data("shipping", phone="not a phone"),
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json() == {"detail": "Invalid phone number"}

    def test_unknown_field_rejected(self, client, auth_headers):
        resp = client.post(
            "/api/users/me/addresses",
            json={**address_data("shipping"), "nickname": "home"},
            headers=auth_headers,
        )
        assert resp.status_code == 422


class TestPaymentMethods:
    def test_card_details_never_returned(self, client, auth_headers):
        card = _add_card(client, auth_headers)

        assert card["last4"] == "4242"
        assert card["brand"] == "visa"
        assert card["is_default"] is True
        assert "provider_token" not in card
        assert "card_number" not in card

    def test_invalid_card(self, client, auth_headers):
        resp = client.post(
            "/api/users/me/payment-methods",
            json=card_data("4242424242424241"),
            headers=auth_headers,
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == "Invalid card number"

    def test_delete_promotes_next_default(self, client, auth_headers):
        first = _add_card(client, auth_headers)
        second = _add_card(client, auth_headers, TEST_CARD_NUMBERS["mastercard"])

        client.delete(f"/api/users/me/payment-methods/{first['id']}", headers=auth_headers)

        methods = client.get("/api/users/me/payment-methods", headers=auth_headers).json()
        assert [(m["id"], m["is_default"]) for m in methods] == [(second["id"], True)]


class TestPayments:
    def test_intent_from_cart_and_confirm(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers)

        headers = {**auth_headers, "Idempotency-Key": "intent-key-1"}
        intent = client.post("/api/payments/intents", headers=headers).json()
        again = client.post("/api/payments/intents", headers=headers).json()
        assert intent["id"] == again["id"]
        assert intent["amount"] == 6480

        resp = client.post(
            f"/api/payments/intents/{intent['id']}/confirm",
            json={"payment_method_id": card["id"]},
            headers=auth_headers,
        )
        body = resp.json()
        assert body["success"] is True
        assert body["payment_intent"]["status"] == "succeeded"

    def test_intent_needs_items(self, client, auth_headers):
        resp = client.post("/api/payments/intents", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["redirect"] == "/cart"

    def test_declined_confirm(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers, TEST_CARD_NUMBERS["insufficient_funds"])
        intent = client.post("/api/payments/intents", headers=auth_headers).json()

        resp = client.post(
            f"/api/payments/intents/{intent['id']}/confirm",
            json={"payment_method_id": card["id"]},
            headers=auth_headers,
        )
        assert resp.status_code == 402
        assert resp.json()["detail"] == "Your card has insufficient funds."


class TestCheckout:
    def test_empty_cart_redirects(self, client, auth_headers):
        resp = client.post("/api/checkout", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json() == {"detail": "Your cart is empty", "redirect": "/cart"}

    def test_full_flow(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers)
        session_id = _checkout_to_review(client, auth_headers, card["id"])

        resp = client.post(f"/api/checkout/{session_id}/place-order", headers=auth_headers)
        assert resp.status_code == 201, resp.text
        confirmation = resp.json()
        assert confirmation["order_number"].startswith("ORD-")
        assert confirmation["summary"]["total"] == "64.80"
        assert confirmation["payment_method"]["last4"] == "4242"

        assert client.get("/api/cart", headers=auth_headers).json()["items"] == []
        resp = client.get(f"/api/checkout/{session_id}/confirmation", headers=auth_headers)
        assert resp.json()["order_id"] == confirmation["order_id"]

        orders = client.get("/api/orders", headers=auth_headers).json()
        assert [o["id"] for o in orders["data"]] == [confirmation["order_id"]]
        assert orders["pagination"] == {"page": 1, "limit": 20, "total": 1, "pages": 1}
        order = client.get(f"/api/orders/{confirmation['order_id']}", headers=auth_headers).json()
        assert order["status"] == "pending"
        assert order["total"] == "64.80"

    def test_decline_keeps_cart_and_creates_no_order(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers, TEST_CARD_NUMBERS["declined"])
        session_id = _checkout_to_review(client, auth_headers, card["id"])

        resp = client.post(f"/api/checkout/{session_id}/place-order", headers=auth_headers)
        assert resp.status_code == 402

        session = client.get(f"/api/checkout/{session_id}", headers=auth_headers).json()
        assert session["step"] == "review"
        assert session["last_error"] == "Your card was declined."
        assert client.get("/api/orders", headers=auth_headers).json()["data"] == []
        assert len(client.get("/api/cart", headers=auth_headers).json()["items"]) == 1

    def test_snapshot_survives_address_edit(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers)
        session_id = _checkout_to_review(client, auth_headers, card["id"])
        session = client.get(f"/api/checkout/{session_id}", headers=auth_headers).json()

        order_id = client.post(f"/api/checkout/{session_id}/place-order", headers=auth_headers).json()["order_id"]
        client.patch(
            f"/api/users/me/addresses/{session['shipping_address_id']}",
            json={"city": "Oakland"},
            headers=auth_headers,
        )

        order = client.get(f"/api/orders/{order_id}", headers=auth_headers).json()
        assert order["shipping_address"]["city"] == "San Francisco"


class TestOrders:
    def _place(self, client, headers):
        _fill_cart(client, headers)
        card = _add_card(client, headers)
        session_id = _checkout_to_review(client, headers, card["id"])
        return client.post(f"/api/checkout/{session_id}/place-order", headers=headers).json()["order_id"]

    def test_cancel_pending(self, client, auth_headers):
        order_id = self._place(client, auth_headers)
        resp = client.post(f"/api/orders/{order_id}/cancel", headers=auth_headers)
        assert resp.json()["status"] == "cancelled"

    def test_cancel_after_shipping_refused(self, client, auth_headers, admin_headers):
        order_id = self._place(client, auth_headers)
        for status in ("processing", "shipped"):
            resp = client.patch(f"/api/orders/admin/{order_id}/status", json={"status": status}, headers=admin_headers)
            assert resp.status_code == 200, resp.text

        resp = client.post(f"/api/orders/{order_id}/cancel", headers=auth_headers)
        assert resp.status_code == 409
        assert resp.json()["detail"] == "Order cannot be cancelled"

    def test_status_update_needs_admin(self, client, auth_headers):
        order_id = self._place(client, auth_headers)
        resp = client.patch(f"/api/orders/admin/{order_id}/status", json={"status": "processing"}, headers=auth_headers)
        assert resp.status_code == 403


class TestAdmin:
    def test_reconcile(self, client, admin_headers):
        resp = client.post("/api/admin/payments/reconcile", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["refunded"] == 0

    def test_reconcile_needs_admin(self, client, auth_headers):
        assert client.post("/api/admin/payments/reconcile", headers=auth_headers).status_code == 403

    def test_refund_cancels_pending_order(self, client, auth_headers, admin_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers)
        session_id = _checkout_to_review(client, auth_headers, card["id"])
        order_id = client.post(f"/api/checkout/{session_id}/place-order", headers=auth_headers).json()["order_id"]
        payment = client.get("/api/payments/history", headers=auth_headers).json()["data"][0]

        resp = client.post(
            f"/api/admin/payments/{payment['id']}/refund",
            json={"reason": "damaged in transit"},
            headers=admin_headers,
        )

        assert resp.status_code == 200, resp.text
        assert resp.json()["payment"]["status"] == "refunded"
        assert resp.json()["order_status"] == "cancelled"
        assert client.get(f"/api/orders/{order_id}", headers=auth_headers).json()["status"] == "cancelled"

        again = client.post(
            f"/api/admin/payments/{payment['id']}/refund",
            json={"reason": "damaged in transit"},
            headers=admin_headers,
        )
        assert again.status_code == 409

    def test_refund_unknown_payment(self, client, admin_headers):
        resp = client.post("/api/admin/payments/missing/refund", json={"reason": "test"}, headers=admin_headers)
        assert resp.status_code == 404

    def test_refund_needs_admin(self, client, auth_headers):
        resp = client.post("/api/admin/payments/missing/refund", json={"reason": "test"}, headers=auth_headers)
        assert resp.status_code == 403


class TestOrderListing:
    def _place(self, client, headers):
        _fill_cart(client, headers)
        card = _add_card(client, headers)
        session_id = _checkout_to_review(client, headers, card["id"])
        return client.post(f"/api/checkout/{session_id}/place-order", headers=headers).json()["order_id"]

    def test_status_filter_and_paging(self, client, auth_headers):
        first = self._place(client, auth_headers)
        second = self._place(client, auth_headers)
        client.post(f"/api/orders/{first}/cancel", headers=auth_headers)

        pending = client.get("/api/orders", params={"status": "pending"}, headers=auth_headers).json()
        assert [o["id"] for o in pending["data"]] == [second]

        page = client.get("/api/orders", params={"page": 2, "limit": 1}, headers=auth_headers).json()
        assert len(page["data"]) == 1
        assert page["pagination"] == {"page": 2, "limit": 1, "total": 2, "pages": 2}

    def test_bad_status_rejected(self, client, auth_headers):
        assert client.get("/api/orders", params={"status": "lost"}, headers=auth_headers).status_code == 422

    def test_admin_all_and_stats(self, client, auth_headers, admin_headers):
        order_id = self._place(client, auth_headers)

        everything = client.get("/api/orders/admin/all", headers=admin_headers).json()
        assert [o["id"] for o in everything["data"]] == [order_id]
        assert everything["data"][0]["user_id"]

        stats = client.get("/api/orders/admin/stats", headers=admin_headers).json()
        assert stats == {
            "total_orders": 1,
            "total_revenue": "64.80",
            "pending_orders": 1,
            "completed_orders": 0,
        }

    def test_admin_listing_needs_admin(self, client, auth_headers):
        assert client.get("/api/orders/admin/all", headers=auth_headers).status_code == 403
        assert client.get("/api/orders/admin/stats", headers=auth_headers).status_code == 403


class TestPaymentHistory:
    def test_history_and_detail(self, client, auth_headers):
        _fill_cart(client, auth_headers)
        card = _add_card(client, auth_headers)
        session_id = _checkout_to_review(client, auth_headers, card["id"])
        order_id = client.post(f"/api/checkout/{session_id}/place-order", headers=auth_headers).json()["order_id"]

        history = client.get("/api/payments/history", headers=auth_headers).json()
        assert history["pagination"]["total"] == 1
        payment = history["data"][0]
        assert payment["order_id"] == order_id
        assert payment["amount"] == 6480
        assert "user_id" not in payment

        detail = client.get(f"/api/payments/{payment['id']}", headers=auth_headers).json()
        assert detail["status"] == "succeeded"

    def test_unknown_payment(self, client, auth_headers):
        assert client.get("/api/payments/missing", headers=auth_headers).status_code == 404
