def _checkout_body(shipping_address, qty=1, method="cod", total=None):
    return {
        "items": [{"product": "p1", "quantity": qty, "price": 9.0}],
        "shippingAddress": shipping_address,
        "paymentMethod": method,
        "subtotal": 9.0 * qty,
        "deliveryCharge": 0,
        "totalAmount": 9.0 * qty if total is None else total,
    }


def test_checkout_creates_order(client, fake_db, shipping_address, current_user):
    fake_db.add_product("p1", name="Confiture", price=9.0, stock=4)

    r = client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, qty=2))
    assert r.status_code == 201
    order = r.json()["order"]
    assert order["paymentStatus"] == "Completed"
    assert order["status"] == "Processing"
    assert order["customer"] == {"_id": current_user["id"]}
    assert fake_db.stock("p1") == 2


def test_checkout_insufficient_stock_reports_available(client, fake_db, shipping_address):
    fake_db.add_product("p1", price=9.0, stock=1)

    r = client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, qty=3))
    assert r.status_code == 400
    body = r.json()
    assert body["productId"] == "p1"
    assert body["available"] == 1
    assert fake_db.rows("orders") == []


def test_checkout_validation_errors_are_400(client, fake_db, shipping_address):
    fake_db.add_product("p1", price=9.0, stock=4)

    assert client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, total=1.0)).status_code == 400
    assert client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, method="paypal")).status_code == 400
    # corps non JSON objet: 400 et non 422
    r = client.post("/api/v1/orders/checkout", json=["not", "an", "object"])
    assert r.status_code == 400
    assert r.json()["detail"] == "Requête invalide"


def test_list_and_get_orders(client, fake_db, shipping_address):
    fake_db.add_product("p1", price=9.0, stock=10)
    created = client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address)).json()["order"]

    r = client.get("/api/v1/orders/user", params={"page": 1, "limit": 5})
    assert r.status_code == 200
    assert r.json()["total"] == 1
    assert r.json()["orders"][0]["orderNumber"] == created["orderNumber"]

    r = client.get(f"/api/v1/orders/{created['id']}")
    assert r.status_code == 200
    assert r.json()["id"] == created["id"]

    assert client.get("/api/v1/orders/does-not-exist").status_code == 404
    assert client.get("/api/v1/orders/user", params={"limit": 500}).status_code == 400


def test_foreign_order_is_not_found(client, fake_db):
    fake_db.tables["orders"] = [{"id": "o-foreign", "order_number": "ORD-9-FFFFFF", "user_id": "someone-else", "status": "Pending"}]
    r = client.get("/api/v1/orders/o-foreign")
    assert r.status_code == 404


def test_admin_status_update(authenticated_admin_client, fake_db, shipping_address):
    client = authenticated_admin_client
    fake_db.add_product("p1", price=9.0, stock=10)
    order = client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, qty=2)).json()["order"]

    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "Cancelled"})
    assert r.status_code == 200
    assert r.json()["order"]["status"] == "Cancelled"
    assert fake_db.stock("p1") == 10

    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "Shipped"})
    assert r.status_code == 409
    r = client.put(f"/api/v1/orders/{order['id']}/status", json={"status": "Teleported"})
    assert r.status_code == 400


def test_status_update_requires_admin(client, fake_db, monkeypatch):
    monkeypatch.setattr(
        "backend.auth.service.get_user_from_token",
        lambda token: {"id": "u1", "role": "user"},
    )
    r = client.put("/api/v1/orders/any/status", json={"status": "Shipped"}, headers={"Authorization": "Bearer tok"})
    assert r.status_code == 403


def test_admin_order_listing_and_stats(authenticated_admin_client, fake_db, shipping_address):
    client = authenticated_admin_client
    fake_db.add_product("p1", price=9.0, stock=10)
    first = client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, qty=2)).json()["order"]
    client.post("/api/v1/orders/checkout", json=_checkout_body(shipping_address, qty=1))
    client.put(f"/api/v1/orders/{first['id']}/status", json={"status": "Delivered"})

    r = client.get("/api/v1/orders", params={"page": 1, "limit": 10})
    assert r.status_code == 200
    assert r.json()["total"] == 2

    r = client.get("/api/v1/orders", params={"status": "Delivered"})
    assert [o["id"] for o in r.json()["orders"]] == [first["id"]]

    r = client.get("/api/v1/orders", params={"search": first["orderNumber"]})
    assert r.json()["total"] == 1

    assert client.get("/api/v1/orders", params={"status": "Lost"}).status_code == 400
    assert client.get("/api/v1/orders/count").json() == {"count": 2}
    assert client.get("/api/v1/orders/total-sales").json() == {"totalSales": 18.0}


def test_admin_order_listing_requires_admin(client, monkeypatch):
    monkeypatch.setattr(
        "backend.auth.service.get_user_from_token",
        lambda token: {"id": "u1", "role": "user"},
    )
    headers = {"Authorization": "Bearer tok"}
    assert client.get("/api/v1/orders", headers=headers).status_code == 403
    assert client.get("/api/v1/orders/count", headers=headers).status_code == 403
    assert client.get("/api/v1/orders/total-sales", headers=headers).status_code == 403
