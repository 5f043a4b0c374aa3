from __future__ import annotations

from decimal import Decimal

from commerce.core.config import settings


def _checkout(client, headers, items, address="1 Main St"):
    return client.post(
        "/api/v1/orders/checkout",
        headers=headers,
        json={"items": items, "shipping_address": address},
    )


def test_health_check(client):
    r = client.get("/api/v1/utils/health-check/")
    assert r.status_code == 200
    assert r.json() is True


def test_checkout_and_read_back(client, user, headers_for, make_product):
    a = make_product(name="A", price="100.00", stock=10)
    b = make_product(name="B", price="50.00", stock=5)
    headers = headers_for(user)

    r = _checkout(
        client,
        headers,
        [{"product_id": a.id, "quantity": 2}, {"product_id": b.id, "quantity": 1}],
    )
    assert r.status_code == 200
    body = r.json()
    assert body["code"] == 0
    order = body["data"]
    assert order["status"] == "PENDING"
    assert Decimal(order["total_amount"]) == Decimal("250.00")
    assert [i["product_id"] for i in order["items"]] == [a.id, b.id]
    assert [Decimal(i["subtotal"]) for i in order["items"]] == [Decimal("200"), Decimal("50")]

    r = client.get(f"/api/v1/orders/{order['id']}", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["id"] == order["id"]

    r = client.get("/api/v1/orders?page=1&page_size=10", headers=headers)
    page = r.json()["data"]
    assert page["count"] == 1
    assert page["page"] == 1
    assert page["page_size"] == 10
    assert page["total_pages"] == 1
    assert page["data"][0]["id"] == order["id"]

    r = client.get(f"/api/v1/products/{a.id}")
    assert r.json()["data"]["stock"] == 8


def test_checkout_errors(client, user, headers_for, make_product):
    a = make_product(stock=1)
    headers = headers_for(user)

    r = _checkout(client, headers, [])
    assert r.status_code == 400
    assert r.json()["code"] == 400201

    r = _checkout(client, headers, [{"product_id": a.id, "quantity": 2}])
    assert r.status_code == 400
    assert r.json() == {"code": 400202, "message": f"Insufficient stock for product {a.id}", "data": None}

    r = _checkout(client, headers, [{"product_id": 987654, "quantity": 1}])
    assert r.status_code == 404
    assert r.json()["code"] == 404101

    r = _checkout(client, headers, [{"product_id": a.id, "quantity": 0}])
    assert r.status_code == 422
    assert r.json()["code"] == 422000

    r = client.get(f"/api/v1/products/{a.id}")
    assert r.json()["data"]["stock"] == 1


def test_order_access_and_status_rules(client, user, other_user, admin, headers_for, make_product):
    a = make_product(stock=10)
    order_id = _checkout(client, headers_for(user), [{"product_id": a.id, "quantity": 1}]).json()[
        "data"
    ]["id"]

    r = client.get(f"/api/v1/orders/{order_id}", headers=headers_for(other_user))
    assert r.status_code == 403
    assert r.json()["code"] == 403001

    r = client.get(f"/api/v1/orders/{order_id}", headers=headers_for(admin))
    assert r.status_code == 200

    r = client.get("/api/v1/orders/987654", headers=headers_for(user))
    assert r.status_code == 404
    assert r.json()["code"] == 404201

    r = client.patch(
        f"/api/v1/orders/{order_id}/status", headers=headers_for(user), json={"status": "SHIPPED"}
    )
    assert r.status_code == 403

    r = client.patch(
        f"/api/v1/orders/{order_id}/status", headers=headers_for(admin), json={"status": "SHIPPED"}
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400203

    r = client.patch(
        f"/api/v1/orders/{order_id}/status", headers=headers_for(admin), json={"status": "BOGUS"}
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400205

    for status in ("PAID", "SHIPPED", "COMPLETED"):
        r = client.patch(
            f"/api/v1/orders/{order_id}/status",
            headers=headers_for(admin),
            json={"status": status},
        )
        assert r.status_code == 200
        assert r.json()["data"]["status"] == status


def test_cancel_order_endpoint(client, user, headers_for, make_product):
    a = make_product(stock=10)
    headers = headers_for(user)
    order_id = _checkout(client, headers, [{"product_id": a.id, "quantity": 3}]).json()["data"]["id"]

    r = client.post(f"/api/v1/orders/{order_id}/cancel", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "CANCELLED"
    assert client.get(f"/api/v1/products/{a.id}").json()["data"]["stock"] == 10

    r = client.post(f"/api/v1/orders/{order_id}/cancel", headers=headers)
    assert r.status_code == 400
    assert r.json()["code"] == 400204

    r = client.get("/api/v1/orders?status=CANCELLED", headers=headers)
    assert r.json()["data"]["count"] == 1


def test_payment_flow(client, queue, user, headers_for, make_product):
    a = make_product(price="100.00", stock=10)
    headers = headers_for(user)
    order_id = _checkout(client, headers, [{"product_id": a.id, "quantity": 2}]).json()["data"]["id"]

    r = client.post("/api/v1/payments", headers=headers, json={"order_id": order_id, "method": "CREDIT_CARD"})
    assert r.status_code == 200
    payment = r.json()["data"]
    assert payment["status"] == "PENDING"
    assert Decimal(payment["amount"]) == Decimal("200.00")

    r = client.post("/api/v1/payments", headers=headers, json={"order_id": order_id, "method": "E_WALLET"})
    assert r.status_code == 400
    assert r.json()["code"] == 400302

    queue.run_all()

    r = client.get(f"/api/v1/payments/{payment['id']}", headers=headers)
    assert r.json()["data"]["status"] == "SUCCESS"
    assert r.json()["data"]["paid_at"] is not None

    r = client.get(f"/api/v1/orders/{order_id}/payment", headers=headers)
    assert r.json()["data"]["id"] == payment["id"]

    r = client.get(f"/api/v1/orders/{order_id}", headers=headers)
    assert r.json()["data"]["status"] == "PAID"

    r = client.get("/api/v1/payments?status=SUCCESS", headers=headers)
    assert r.json()["data"]["count"] == 1

    r = client.post("/api/v1/payments", headers=headers, json={"order_id": order_id, "method": "E_WALLET"})
    assert r.status_code == 400
    assert r.json()["code"] == 400302


def test_payment_validation(client, user, other_user, headers_for, make_product):
    a = make_product(stock=10)
    order_id = _checkout(client, headers_for(user), [{"product_id": a.id, "quantity": 1}]).json()[
        "data"
    ]["id"]

    r = client.post(
        "/api/v1/payments", headers=headers_for(user), json={"order_id": order_id, "method": "CASH"}
    )
    assert r.status_code == 400
    assert r.json()["code"] == 400301

    r = client.post(
        "/api/v1/payments",
        headers=headers_for(other_user),
        json={"order_id": order_id, "method": "CREDIT_CARD"},
    )
    assert r.status_code == 404
    assert r.json()["code"] == 404201


def test_payment_callback(client, queue, user, headers_for, make_product, monkeypatch):
    monkeypatch.setattr(settings, "PAYMENT_CALLBACK_SECRET", "s3cret")
    a = make_product(stock=10)
    headers = headers_for(user)
    order_id = _checkout(client, headers, [{"product_id": a.id, "quantity": 1}]).json()["data"]["id"]
    txn = client.post(
        "/api/v1/payments", headers=headers, json={"order_id": order_id, "method": "BANK_TRANSFER"}
    ).json()["data"]["transaction_id"]

    body = {"transaction_id": txn, "status": "FAILED", "failed_reason": "insufficient funds"}

    r = client.post("/api/v1/payments/callback", json=body)
    assert r.status_code == 401
    assert r.json()["code"] == 401301

    r = client.post("/api/v1/payments/callback", json=body, headers={"Authorization": "Bearer s3cret"})
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "FAILED"
    assert r.json()["data"]["failed_reason"] == "insufficient funds"

    r = client.post("/api/v1/payments/callback", json=body, headers={"Authorization": "s3cret"})
    assert r.status_code == 400
    assert r.json()["code"] == 400304

    r = client.post(
        "/api/v1/payments/callback",
        json={"transaction_id": "TXN-1-0001", "status": "SUCCESS"},
        headers={"Authorization": "s3cret"},
    )
    assert r.status_code == 404
    assert r.json()["code"] == 404301

    r = client.post(
        "/api/v1/payments/callback",
        json={"transaction_id": txn, "status": "PROCESSING"},
        headers={"Authorization": "s3cret"},
    )
    assert r.status_code == 422

    # the background settlement afterwards is a no-op
    assert queue.run_all() == [None]
    r = client.get(f"/api/v1/orders/{order_id}", headers=headers)
    assert r.json()["data"]["status"] == "PENDING"


def test_admin_endpoints(client, user, other_user, admin, headers_for, make_product):
    a = make_product(stock=10)
    for owner in (user, other_user):
        oid = _checkout(client, headers_for(owner), [{"product_id": a.id, "quantity": 1}]).json()[
            "data"
        ]["id"]
        client.post(
            "/api/v1/payments",
            headers=headers_for(owner),
            json={"order_id": oid, "method": "E_WALLET"},
        )

    r = client.get("/api/v1/admin/orders", headers=headers_for(user))
    assert r.status_code == 403
    assert r.json()["code"] == 403002

    r = client.get("/api/v1/admin/orders?page=1&page_size=1", headers=headers_for(admin))
    data = r.json()["data"]
    assert data["count"] == 2
    assert data["total_pages"] == 2
    assert len(data["data"]) == 1

    r = client.get("/api/v1/admin/payments?status=PENDING", headers=headers_for(admin))
    assert r.json()["data"]["count"] == 2

    r = client.get("/api/v1/admin/payments?status=WAT", headers=headers_for(admin))
    assert r.status_code == 400
    assert r.json()["code"] == 400305


def test_product_admin_create(client, user, admin, headers_for):
    body = {"name": "Lamp", "price": "25.50", "stock": 3}

    r = client.post("/api/v1/products", headers=headers_for(user), json=body)
    assert r.status_code == 403

    r = client.post("/api/v1/products", headers=headers_for(admin), json=body)
    assert r.status_code == 200
    product = r.json()["data"]
    assert Decimal(product["price"]) == Decimal("25.50")

    r = client.get("/api/v1/products")
    assert r.json()["data"]["count"] == 1

    r = client.get("/api/v1/products/987654")
    assert r.status_code == 404


def test_auth_failures(client):
    r = client.get("/api/v1/orders")
    assert r.status_code in (401, 403)

    r = client.get("/api/v1/orders", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    assert r.json()["code"] == 401000
