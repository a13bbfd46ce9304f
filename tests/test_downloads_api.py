import uuid

from conftest import ExplodingDb, bearer

import main
from database import get_db


def insert_order(mongo, status="paid", user_id=None, items=None):
    order_id = str(uuid.uuid4())
    mongo["order"].insert_one({
        "_id": order_id,
        "user_id": user_id,
        "customer_email": "buyer@example.com",
        "items": items or [{"id": "p1", "title": "Love Letter Templates", "price": 299, "quantity": 2}],
        "total": 598,
        "status": status,
        "payment_method": "razorpay",
        "payment_id": "pay_1",
    })
    return order_id


# verify-order

def test_malformed_order_id_rejected_before_database(client):
    main.app.dependency_overrides[get_db] = lambda: ExplodingDb()
    res = client.post("/api/verify-order", json={"orderId": "not-a-uuid"})
    assert res.status_code == 400
    assert res.json() == {"valid": False, "error": "Invalid order ID format"}


def test_missing_order_id(client):
    res = client.post("/api/verify-order", json={})
    assert res.status_code == 400
    assert res.json()["valid"] is False


def test_verify_paid_order(client, mongo):
    order_id = insert_order(mongo)
    res = client.post("/api/verify-order", json={"orderId": order_id.upper()})
    assert res.status_code == 200
    body = res.json()
    assert body["valid"] is True
    assert body["order"]["id"] == order_id
    assert body["order"]["status"] == "paid"
    assert body["order"]["total"] == 598
    assert body["order"]["hasFiles"] is True
    assert body["order"]["items"] == [{"id": "p1", "title": "Love Letter Templates", "price": 299,
                                       "image_url": "https://img.example/p1.jpg"}]
    assert "file_url" not in res.text


def test_verify_shows_current_metadata_but_frozen_total(client, mongo):
    order_id = insert_order(mongo)
    mongo["product"].update_one({"_id": "p1"}, {"$set": {"price": 349, "title": "Templates v2"}})
    order = client.post("/api/verify-order", json={"orderId": order_id}).json()["order"]
    assert order["items"][0]["title"] == "Templates v2"
    assert order["items"][0]["price"] == 349
    assert order["total"] == 598


def test_verify_falls_back_to_snapshot_for_removed_products(client, mongo):
    order_id = insert_order(mongo, items=[{"id": "gone", "title": "Old Pack", "price": 100, "quantity": 1}])
    order = client.post("/api/verify-order", json={"orderId": order_id}).json()["order"]
    assert order["items"] == [{"id": "gone", "title": "Old Pack", "price": 100, "image_url": None}]
    assert order["hasFiles"] is False


def test_verify_is_repeatable(client, mongo):
    order_id = insert_order(mongo)
    first = client.post("/api/verify-order", json={"orderId": order_id}).json()
    second = client.post("/api/verify-order", json={"orderId": order_id}).json()
    assert first == second


def test_unpaid_and_unknown_orders_look_the_same(client, mongo):
    pending = client.post("/api/verify-order", json={"orderId": insert_order(mongo, status="pending")})
    cancelled = client.post("/api/verify-order", json={"orderId": insert_order(mongo, status="cancelled")})
    unknown = client.post("/api/verify-order", json={"orderId": str(uuid.uuid4())})
    for res in (pending, cancelled, unknown):
        assert res.status_code == 404
        assert res.json() == {"valid": False, "error": "Order not found or payment not verified"}


def test_completed_and_delivered_count_as_paid(client, mongo):
    for status in ("completed", "delivered"):
        res = client.post("/api/verify-order", json={"orderId": insert_order(mongo, status=status)})
        assert res.status_code == 200


def test_other_user_cannot_verify_owned_order(client, mongo):
    order_id = insert_order(mongo, user_id="user-1")
    res = client.post("/api/verify-order", json={"orderId": order_id}, headers=bearer("user-2"))
    assert res.status_code == 403
    assert res.json() == {"valid": False, "error": "Unauthorized"}

    assert client.post("/api/verify-order", json={"orderId": order_id},
                       headers=bearer("user-1")).status_code == 200


def test_guest_order_open_to_id_holder(client, mongo):
    order_id = insert_order(mongo, user_id=None)
    assert client.post("/api/verify-order", json={"orderId": order_id}).status_code == 200
    assert client.post("/api/verify-order", json={"orderId": order_id},
                       headers=bearer("user-2")).status_code == 200


def test_invalid_token_treated_as_guest(client, mongo):
    order_id = insert_order(mongo, user_id=None)
    res = client.post("/api/verify-order", json={"orderId": order_id},
                      headers={"Authorization": "Bearer not.a.jwt"})
    assert res.status_code == 200


# download-product

def test_download_returns_signed_url(client, mongo, storage_client):
    order_id = insert_order(mongo)
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id})
    assert res.status_code == 200
    body = res.json()
    assert body["fileName"] == "Love Letter Templates"
    assert body["downloadUrl"].startswith("https://storage.example/signed/digital-products/products/p1.pdf")
    assert storage_client.calls == [("digital-products", "products/p1.pdf", 3600)]


def test_download_uses_bucket_embedded_in_legacy_url(client, mongo, storage_client):
    storage_client.available = {"old-bucket"}
    order_id = insert_order(mongo, items=[{"id": "p2", "title": "Couple Planner", "price": 499, "quantity": 1}])
    res = client.post("/api/download-product", json={"productId": "p2", "orderId": order_id})
    assert res.status_code == 200
    assert storage_client.calls == [("old-bucket", "files/p2.zip", 3600)]


def test_download_falls_back_through_known_buckets(client, mongo, storage_client):
    storage_client.available = {"yourdigitalproducts"}
    order_id = insert_order(mongo)
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id})
    assert res.status_code == 200
    assert [c[0] for c in storage_client.calls] == ["digital-products", "yourdigitalproducts"]


def test_pending_order_never_gets_a_url(client, mongo, storage_client):
    order_id = insert_order(mongo, status="pending")
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id})
    assert res.status_code == 403
    assert res.json() == {"error": "Order not found or payment not verified"}
    assert storage_client.calls == []


def test_download_requires_both_ids(client):
    res = client.post("/api/download-product", json={"productId": "p1"})
    assert res.status_code == 400
    assert res.json() == {"error": "Product ID and Order ID are required"}


def test_product_outside_order_forbidden(client, mongo, storage_client):
    order_id = insert_order(mongo)
    for product_id in ("p2", "does-not-exist"):
        res = client.post("/api/download-product", json={"productId": product_id, "orderId": order_id})
        assert res.status_code == 403
        assert res.json() == {"error": "Product not found in this order"}
    assert storage_client.calls == []


def test_product_without_file(client, mongo):
    order_id = insert_order(mongo, items=[{"id": "p4", "title": "Quiz Bundle", "price": 399, "quantity": 1}])
    res = client.post("/api/download-product", json={"productId": "p4", "orderId": order_id})
    assert res.status_code == 404
    assert res.json() == {"error": "Product file not found"}


def test_other_user_cannot_download(client, mongo, storage_client):
    order_id = insert_order(mongo, user_id="user-1")
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id},
                      headers=bearer("user-2"))
    assert res.status_code == 403
    assert res.json() == {"error": "Unauthorized"}
    assert storage_client.calls == []


def test_storage_failure_hides_diagnostic(client, mongo, storage_client):
    storage_client.available = set()
    order_id = insert_order(mongo)
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id})
    assert res.status_code == 500
    assert res.json() == {"error": "Failed to generate download URL"}
    assert "digital-products" not in res.text


def test_end_to_end_purchase_then_download(client, paid_order):
    order_id = paid_order(items=[{"id": "p1"}], headers=bearer("user-9"))
    res = client.post("/api/download-product", json={"productId": "p1", "orderId": order_id},
                      headers=bearer("user-9"))
    assert res.status_code == 200
    assert res.json()["downloadUrl"]


def test_object_id_product_download_ignores_hex_case(client, mongo, storage_client):
    from bson import ObjectId

    oid = ObjectId()
    mongo["product"].insert_one({"_id": oid, "title": "Legacy Pack", "price": 150, "is_active": True,
                                 "file_url": "legacy/pack.zip"})
    res = client.post("/api/create-order", json={"items": [{"id": str(oid).upper()}],
                                                  "customerEmail": "buyer@example.com"})
    assert res.status_code == 200
    order_id = res.json()["orderId"]

    verified = client.post("/api/verify-order", json={"orderId": order_id}).json()
    assert verified["order"]["items"][0]["title"] == "Legacy Pack"
    assert verified["order"]["hasFiles"] is True

    res = client.post("/api/download-product", json={"productId": str(oid).upper(), "orderId": order_id})
    assert res.status_code == 200
    assert storage_client.calls == [("digital-products", "legacy/pack.zip", 3600)]
