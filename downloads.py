"""
Order verification and the download gate.

Both operations re-check payment status and ownership on every call; a
download never relies on an earlier verify. Failures that could reveal whether
an order exists share one generic message.
"""
import re
from typing import Optional

from pymongo.errors import PyMongoError

from database import id_candidates, normalize_id
from errors import (FileNotAvailable, OrderNotFound, ProductNotInOrder, Unauthorized,
                    ValidationError)
from logs import log_json, log_exception
from schemas import PAID_STATUSES, DownloadLink, OrderSummary, OrderVerified
from storage import SignedUrlMinter

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)

DISPLAY_FIELDS = {"title": 1, "price": 1, "image_url": 1, "file_url": 1}


def load_paid_order(db, order_id: Optional[str], user_id: Optional[str],
                    not_found_status: int = 404) -> dict:
    if not order_id:
        raise ValidationError("Order ID is required")
    if not UUID_PATTERN.match(order_id):
        raise ValidationError("Invalid order ID format")

    order = db["order"].find_one({"_id": order_id.lower(), "status": {"$in": list(PAID_STATUSES)}})
    if not order:
        log_json("INFO", "Order not found or not paid", order_id=order_id)
        error = OrderNotFound()
        error.status_code = not_found_status
        raise error

    owner = order.get("user_id")
    if user_id and owner and owner != user_id:
        log_json("WARN", "User does not own this order", order_id=order_id, user_id=user_id)
        raise Unauthorized("Unauthorized")
    return order


def verify_order(db, order_id: Optional[str], user_id: Optional[str] = None) -> OrderVerified:
    order = load_paid_order(db, order_id, user_id)
    snapshot = order.get("items", [])
    product_ids = [item["id"] for item in snapshot]

    try:
        current = {
            normalize_id(str(p["_id"])): p
            for p in db["product"].find({"_id": {"$in": id_candidates(product_ids)}}, DISPLAY_FIELDS)
        }
    except PyMongoError as e:
        log_exception("ERROR", "Error fetching products for order", exc=e, order_id=order_id)
        current = {}

    items = []
    for line in snapshot:
        product = current.get(normalize_id(line["id"]))
        if product is None:
            items.append({"id": line["id"], "title": line.get("title"), "price": line.get("price"),
                          "image_url": None})
            continue
        items.append({
            "id": line["id"],
            "title": product.get("title"),
            "price": product.get("price"),
            "image_url": product.get("image_url"),
        })

    summary = OrderSummary(
        id=order["_id"],
        status=order["status"],
        total=order["total"],
        items=items,
        hasFiles=any(p.get("file_url") for p in current.values()),
    )
    return OrderVerified(order=summary)


def get_download_url(db, storage: SignedUrlMinter, product_id: Optional[str],
                     order_id: Optional[str], user_id: Optional[str] = None) -> DownloadLink:
    if not product_id or not order_id:
        raise ValidationError("Product ID and Order ID are required")

    order = load_paid_order(db, order_id, user_id, not_found_status=403)

    wanted = normalize_id(product_id)
    if not any(normalize_id(item.get("id") or "") == wanted for item in order.get("items", [])):
        raise ProductNotInOrder()

    product = db["product"].find_one({"_id": {"$in": id_candidates([product_id])}},
                                     {"file_url": 1, "title": 1})
    if not product or not product.get("file_url"):
        raise FileNotAvailable(detail={"product_id": product_id})

    url = storage.mint(product["file_url"])
    log_json("INFO", "Download URL generated", product_id=product_id, order_id=order_id)
    return DownloadLink(downloadUrl=url, fileName=product.get("title") or "download")
