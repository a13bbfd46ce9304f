"""
Razorpay integration.

Two halves of the payment protocol live here: creating a gateway order before
the client opens the checkout widget, and checking the signature the widget
hands back afterwards. The key secret never leaves this module.
"""
import hashlib
import hmac
import math
import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import requests

from config import Settings
from errors import GatewayError, ValidationError
from logs import log_json
from schemas import PaymentOrder


def to_smallest_unit(amount) -> int:
    """Rupees to paise, rounding half up (``Decimal`` avoids float drift)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def expected_signature(secret: str, gateway_order_id: str, gateway_payment_id: str) -> str:
    body = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, gateway_order_id: str, gateway_payment_id: str,
                     signature: str) -> bool:
    expected = expected_signature(secret, gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class RazorpayClient:
    def __init__(self, key_id: str, key_secret: str, api_url: str = "https://api.razorpay.com/v1",
                 timeout: float = 10, session=None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings: Settings, session=None) -> Optional["RazorpayClient"]:
        if not settings.gateway_configured:
            return None
        return cls(settings.razorpay_key_id, settings.razorpay_key_secret,
                   api_url=settings.razorpay_api_url,
                   timeout=settings.outbound_timeout_seconds, session=session)

    def create_payment_order(self, amount, currency: str = "INR", receipt: Optional[str] = None,
                             notes: Optional[dict] = None) -> PaymentOrder:
        if amount is None or not math.isfinite(amount) or amount <= 0:
            raise ValidationError("Valid amount is required")

        payload = {
            "amount": to_smallest_unit(amount),
            "currency": currency or "INR",
            "receipt": receipt or f"rcpt_{int(time.time() * 1000)}",
            "notes": notes or {},
        }

        try:
            response = self.session.post(
                f"{self.api_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            raise GatewayError(detail={"reason": "timeout", "timeout_s": self.timeout})
        except requests.exceptions.RequestException as e:
            raise GatewayError(detail={"reason": type(e).__name__, "message": str(e)})

        if not response.ok:
            try:
                diagnostic = response.json()
            except ValueError:
                diagnostic = response.text
            raise GatewayError(detail={"http_status": response.status_code, "gateway": diagnostic})

        data = response.json()
        log_json("INFO", "Razorpay order created", gateway_order_id=data.get("id"),
                 amount=data.get("amount"), currency=data.get("currency"))
        return PaymentOrder(
            orderId=data["id"],
            amount=data["amount"],
            currency=data["currency"],
            keyId=self.key_id,
        )

