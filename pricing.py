"""
Trusted cart pricing.

The only place an order total is computed. Prices and titles always come from
the active catalog; whatever the client sent for price or total is ignored.
"""
from collections import OrderedDict
from typing import Iterable, List, NamedTuple

from pymongo.errors import PyMongoError

from database import id_candidates, normalize_id
from errors import CatalogError, ProductUnavailable, ValidationError
from schemas import CartLine, OrderItem


class PricedCart(NamedTuple):
    items: List[OrderItem]
    total: int


def merge_lines(lines: Iterable[CartLine]) -> "OrderedDict[str, int]":
    """Collapse the cart into id -> quantity, keeping first-seen order."""
    quantities: "OrderedDict[str, int]" = OrderedDict()
    for line in lines:
        if not line.id:
            raise ValidationError("Cart item id is required")
        key = normalize_id(line.id)
        quantities[key] = quantities.get(key, 0) + (line.quantity or 1)
    return quantities


def fetch_active_products(db, product_ids: List[str]) -> dict:
    try:
        docs = db["product"].find(
            {"_id": {"$in": id_candidates(product_ids)}, "is_active": True},
            {"title": 1, "price": 1},
        )
        return {normalize_id(str(d["_id"])): d for d in docs}
    except PyMongoError as e:
        raise CatalogError(detail=str(e))


def price_cart(db, lines: List[CartLine]) -> PricedCart:
    if not lines:
        raise ValidationError("Cart items or Product ID is required")

    quantities = merge_lines(lines)
    products = fetch_active_products(db, list(quantities))

    missing = [pid for pid in quantities if pid not in products]
    if missing:
        raise ProductUnavailable(missing, detail={"missing": missing})

    items = [
        OrderItem(
            id=str(products[pid]["_id"]),
            title=products[pid].get("title", ""),
            price=int(products[pid]["price"]),
            quantity=qty,
        )
        for pid, qty in quantities.items()
    ]
    total = sum(item.price * item.quantity for item in items)
    return PricedCart(items=items, total=total)
