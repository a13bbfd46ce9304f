"""
Database schemas and request/response models for the Digital Products Store.

The Order model maps to the "order" collection (lowercase class name);
products are read as raw documents from "product". Request models use the
camelCase field names the storefront client sends.
"""
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

PAID_STATUSES = ("paid", "completed", "delivered")
MAX_QUANTITY = 50

OrderStatus = Literal["pending", "paid", "completed", "delivered", "cancelled"]


# Collections

class OrderItem(BaseModel):
    id: str
    title: str
    price: int = Field(..., gt=0)
    quantity: int = Field(1, ge=1, le=MAX_QUANTITY)


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., alias="_id", description="UUID4 order id")
    user_id: Optional[str] = None
    customer_email: str
    customer_name: Optional[str] = None
    items: List[OrderItem]
    total: int = Field(..., ge=0, description="Server-computed sum of price x quantity")
    status: OrderStatus = "pending"
    payment_method: str
    payment_id: str
    demo: bool = False


# Requests

class CartLine(BaseModel):
    id: str
    quantity: Optional[int] = Field(None, ge=1, le=MAX_QUANTITY)


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: Optional[List[CartLine]] = None
    product_id: Optional[str] = Field(None, alias="productId")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    payment_id: Optional[str] = Field(None, alias="paymentId")
    # accepted for compatibility; never used for pricing
    total: Optional[float] = None


class PaymentOrderRequest(BaseModel):
    amount: Optional[float] = Field(None, allow_inf_nan=False)
    currency: str = "INR"
    receipt: Optional[str] = None
    notes: Optional[Dict[str, Any]] = None


class VerifyPaymentRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    gateway_order_id: Optional[str] = Field(None, alias="razorpay_order_id")
    gateway_payment_id: Optional[str] = Field(None, alias="razorpay_payment_id")
    gateway_signature: Optional[str] = Field(None, alias="razorpay_signature")
    items: List[CartLine] = Field(default_factory=list)
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_name: Optional[str] = Field(None, alias="customerName")
    total: Optional[float] = None


class VerifyOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: Optional[str] = Field(None, alias="orderId")


class DownloadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: Optional[str] = Field(None, alias="productId")
    order_id: Optional[str] = Field(None, alias="orderId")


# Responses

class OrderCreated(BaseModel):
    orderId: str
    message: str = "Order created successfully"
    itemCount: int
    total: int


class PaymentOrder(BaseModel):
    orderId: str
    amount: int
    currency: str
    keyId: str


class PaymentVerified(BaseModel):
    valid: bool = True
    orderId: str
    message: str = "Payment verified and order created successfully"


class OrderSummary(BaseModel):
    id: str
    status: str
    total: int
    items: List[Dict[str, Any]]
    hasFiles: bool


class OrderVerified(BaseModel):
    valid: bool = True
    order: OrderSummary


class DownloadLink(BaseModel):
    downloadUrl: str
    fileName: str


class ProductOut(BaseModel):
    id: str
    title: str
    slug: Optional[str] = None
    description: Optional[str] = None
    short_description: Optional[str] = None
    price: int
    original_price: Optional[int] = None
    image_url: Optional[str] = None
    category: Optional[str] = None
    featured: bool = False
    bestseller: bool = False
    created_at: Optional[datetime] = None
