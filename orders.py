"""
Order creation.

``create_order`` is the demo path for environments without gateway
credentials: it trusts the client only for which products were picked and tags
the order ``demo``. ``verify_and_create_order`` is the production path and
writes nothing unless the gateway signature checks out.
"""
import re
import secrets
import string
import time
import uuid
from typing import List, Optional

from pymongo.errors import PyMongoError

from database import create_document
from errors import GatewayError, OrderWriteError, RateLimited, SignatureMismatch, ValidationError
from gateway import verify_signature
from logs import log_json
from pricing import PricedCart, price_cart
from ratelimit import RateLimiter, normalize_key
from schemas import (CartLine, CreateOrderRequest, Order, OrderCreated, PaymentVerified,
                     VerifyPaymentRequest)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email(email: Optional[str], message: str = "Invalid email format") -> str:
    if not email or not EMAIL_PATTERN.match(email):
        raise ValidationError(message)
    return email


def demo_payment_id() -> str:
    suffix = "".join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(9))
    return f"demo_{int(time.time() * 1000)}_{suffix}"


def persist_order(db, priced: PricedCart, *, customer_email: str, customer_name: Optional[str],
                  user_id: Optional[str], payment_method: str, payment_id: str,
                  demo: bool) -> str:
    order = Order(
        id=str(uuid.uuid4()),
        user_id=user_id,
        customer_email=customer_email,
        customer_name=customer_name or None,
        items=priced.items,
        total=priced.total,
        status="paid",
        payment_method=payment_method,
        payment_id=payment_id,
        demo=demo,
    )
    try:
        return create_document(db, "order", order)
    except PyMongoError as e:
        raise OrderWriteError(detail=str(e))


def cart_lines(request: CreateOrderRequest) -> List[CartLine]:
    if request.items:
        return list(request.items)
    if request.product_id:
        return [CartLine(id=request.product_id)]
    raise ValidationError("Cart items or Product ID is required")


def create_order(db, limiter: RateLimiter, request: CreateOrderRequest,
                 user_id: Optional[str] = None) -> OrderCreated:
    lines = cart_lines(request)
    if not request.customer_email:
        raise ValidationError("Customer email is required")
    email = validate_email(request.customer_email)

    decision = limiter.check_and_consume(email)
    if not decision.allowed:
        log_json("WARN", "Rate limit exceeded", rate_limit_key=normalize_key(email),
                 retry_after=decision.retry_after)
        raise RateLimited(decision.retry_after)

    priced = price_cart(db, lines)

    log_json("INFO", "Creating order", item_count=len(priced.items), user_id=user_id,
             total=priced.total, client_total=request.total, payment_method="demo")

    order_id = persist_order(
        db, priced,
        customer_email=email,
        customer_name=request.customer_name,
        user_id=user_id,
        payment_method=request.payment_method or "demo",
        payment_id=request.payment_id or demo_payment_id(),
        demo=True,
    )
    log_json("INFO", "Order created", order_id=order_id)
    return OrderCreated(orderId=order_id, itemCount=len(priced.items), total=priced.total)


def verify_and_create_order(db, secret: Optional[str], request: VerifyPaymentRequest,
                            user_id: Optional[str] = None) -> PaymentVerified:
    if not secret:
        raise GatewayError("Payment gateway not configured", detail="RAZORPAY_KEY_SECRET unset")

    if not (request.gateway_order_id and request.gateway_payment_id and request.gateway_signature):
        raise ValidationError("Missing payment verification data")

    if not verify_signature(secret, request.gateway_order_id, request.gateway_payment_id,
                            request.gateway_signature):
        log_json("WARN", "Payment signature verification failed",
                 gateway_order_id=request.gateway_order_id)
        raise SignatureMismatch()

    email = validate_email(request.customer_email, "Valid email is required")
    priced = price_cart(db, request.items)

    order_id = persist_order(
        db, priced,
        customer_email=email,
        customer_name=request.customer_name,
        user_id=user_id,
        payment_method="razorpay",
        payment_id=request.gateway_payment_id,
        demo=False,
    )
    log_json("INFO", "Order created after payment verification", order_id=order_id,
             gateway_payment_id=request.gateway_payment_id, total=priced.total)
    return PaymentVerified(orderId=order_id)
