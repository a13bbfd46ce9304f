from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from logs import log_json


class StoreError(Exception):
    """Base for every failure a route reports to the client.

    ``message`` is what the client sees. ``detail`` is for server logs only and
    must never be copied into a response body.
    """

    status_code = 500
    message = "Internal server error"

    def __init__(self, message: Optional[str] = None, detail: Any = None, **extra):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.detail = detail
        self.extra: Dict[str, Any] = extra
        self.headers: Dict[str, str] = {}

    def body(self) -> dict:
        return {"error": self.message, **self.extra}


class ValidationError(StoreError):
    status_code = 400
    message = "Invalid request"


class RateLimited(StoreError):
    status_code = 429
    message = "Too many order attempts. Please try again later."

    def __init__(self, retry_after: int, **kwargs):
        super().__init__(retryAfter=retry_after, **kwargs)
        self.retry_after = retry_after
        self.headers = {"Retry-After": str(retry_after)}


class ProductUnavailable(StoreError):
    status_code = 404
    message = "Some products are not available"

    def __init__(self, missing, **kwargs):
        super().__init__(missing=list(missing), **kwargs)
        self.missing = list(missing)


class ProductNotInOrder(StoreError):
    status_code = 403
    message = "Product not found in this order"


class OrderNotFound(StoreError):
    status_code = 404
    message = "Order not found or payment not verified"


class FileNotAvailable(StoreError):
    status_code = 404
    message = "Product file not found"


class SignatureMismatch(StoreError):
    status_code = 400
    message = "Payment verification failed"


class Unauthorized(StoreError):
    status_code = 403
    message = "Unauthorized access to this order"


class GatewayError(StoreError):
    message = "Failed to create payment order"


class StorageError(StoreError):
    message = "Failed to generate download URL"


class CatalogError(StoreError):
    message = "Failed to verify products"


class OrderWriteError(StoreError):
    message = "Failed to create order"


class InternalError(StoreError):
    pass


def error_response(exc: StoreError, **fields) -> JSONResponse:
    if exc.detail is not None:
        log_json("ERROR" if exc.status_code >= 500 else "WARN", exc.message,
                 error_kind=type(exc).__name__, status_code=exc.status_code,
                 detail=exc.detail)
    content = {**exc.body(), **fields}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return error_response(exc)
