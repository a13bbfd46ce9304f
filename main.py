import os
from typing import List, Optional

import requests
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import downloads
import orders
from auth import get_current_user_id
from config import Settings, get_settings
from database import get_db, serialize_doc
from errors import GatewayError, InternalError, StoreError, error_response, store_error_handler
from gateway import RazorpayClient
from logs import log_exception, log_json
from ratelimit import RateLimiter
from schemas import (CreateOrderRequest, DownloadRequest, PaymentOrderRequest, ProductOut,
                     VerifyOrderRequest, VerifyPaymentRequest)
from storage import SignedUrlMinter

app = FastAPI(title="Digital Products Store API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(StoreError, store_error_handler)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    log_json("WARN", "Rejected malformed request body", path=request.url.path,
             errors=exc.errors())
    return JSONResponse(status_code=400, content={"error": "Invalid request body"})


# ----------------------
# Dependencies
# ----------------------
_settings = get_settings()
order_rate_limiter = RateLimiter(_settings.rate_limit_max, _settings.rate_limit_window_seconds)
# one pooled session for every outbound gateway and storage call
http_session = requests.Session()


@app.on_event("shutdown")
def close_http_session():
    http_session.close()


def get_rate_limiter() -> RateLimiter:
    return order_rate_limiter


def get_gateway(settings: Settings = Depends(get_settings)) -> Optional[RazorpayClient]:
    return RazorpayClient.from_settings(settings, session=http_session)


def get_storage(settings: Settings = Depends(get_settings)) -> SignedUrlMinter:
    return SignedUrlMinter.from_settings(settings, session=http_session)


def handle_failure(name: str, exc: Exception, **fields) -> JSONResponse:
    if isinstance(exc, StoreError):
        return error_response(exc, **fields)
    log_exception("ERROR", f"Error in {name}", exc=exc)
    return error_response(InternalError(), **fields)


# ----------------------
# Routes
# ----------------------
@app.get("/")
def read_root():
    return {"message": "Digital Products Store Backend running"}


# Catalog
@app.get("/api/products", response_model=List[ProductOut])
def list_products(category: Optional[str] = None, featured: Optional[bool] = None,
                  db=Depends(get_db)):
    query = {"is_active": True}
    if category:
        query["category"] = category
    if featured is not None:
        query["featured"] = featured
    docs = db["product"].find(query, {"file_url": 0}).sort("created_at", -1)
    return [ProductOut(**serialize_doc(d)) for d in docs]


@app.get("/api/products/{slug}")
def get_product(slug: str, db=Depends(get_db)):
    prod = db["product"].find_one({"slug": slug, "is_active": True}, {"file_url": 0})
    if not prod:
        return JSONResponse(status_code=404, content={"error": "Product not found"})
    related = []
    if prod.get("category"):
        related = list(db["product"].find(
            {"category": prod["category"], "slug": {"$ne": slug}, "is_active": True},
            {"file_url": 0},
        ).limit(4))
    return {
        "product": ProductOut(**serialize_doc(prod)).model_dump(mode="json"),
        "related": [ProductOut(**serialize_doc(r)).model_dump(mode="json") for r in related],
    }


# Orders
@app.post("/api/create-order")
def create_order(payload: CreateOrderRequest, db=Depends(get_db),
                 limiter: RateLimiter = Depends(get_rate_limiter),
                 user_id: Optional[str] = Depends(get_current_user_id)):
    try:
        return orders.create_order(db, limiter, payload, user_id)
    except Exception as e:
        return handle_failure("create-order", e)


@app.post("/api/create-razorpay-order")
def create_razorpay_order(payload: PaymentOrderRequest,
                          gateway: Optional[RazorpayClient] = Depends(get_gateway)):
    try:
        if gateway is None:
            raise GatewayError("Payment gateway not configured",
                               detail="Razorpay keys not configured")
        return gateway.create_payment_order(payload.amount, payload.currency,
                                            payload.receipt, payload.notes)
    except Exception as e:
        return handle_failure("create-razorpay-order", e)


@app.post("/api/verify-razorpay-payment")
def verify_razorpay_payment(payload: VerifyPaymentRequest, db=Depends(get_db),
                            settings: Settings = Depends(get_settings),
                            user_id: Optional[str] = Depends(get_current_user_id)):
    try:
        return orders.verify_and_create_order(db, settings.razorpay_key_secret, payload, user_id)
    except Exception as e:
        return handle_failure("verify-razorpay-payment", e, valid=False)


@app.post("/api/verify-order")
def verify_order(payload: VerifyOrderRequest, db=Depends(get_db),
                 user_id: Optional[str] = Depends(get_current_user_id)):
    try:
        return downloads.verify_order(db, payload.order_id, user_id)
    except Exception as e:
        return handle_failure("verify-order", e, valid=False)


@app.post("/api/download-product")
def download_product(payload: DownloadRequest, db=Depends(get_db),
                     storage: SignedUrlMinter = Depends(get_storage),
                     user_id: Optional[str] = Depends(get_current_user_id)):
    try:
        return downloads.get_download_url(db, storage, payload.product_id, payload.order_id, user_id)
    except Exception as e:
        return handle_failure("download-product", e)


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": None,
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }

    try:
        db = get_db()
        response["database"] = "✅ Available"
        response["database_name"] = db.name if hasattr(db, 'name') else "✅ Connected"
        response["connection_status"] = "Connected"

        try:
            collections = db.list_collection_names()
            response["collections"] = collections[:10]
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"
    except StoreError as e:
        response["database"] = f"❌ Error: {e.message}"

    response["database_url"] = "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set"
    response["database_name"] = "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set"
    response["payment_gateway"] = "✅ Configured" if _settings.gateway_configured else "⚠️  Demo mode"

    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
