import os
from typing import List, Optional

from pydantic import BaseModel, Field


DEFAULT_BUCKETS = "digital-products,yourdigitalproducts"


class Settings(BaseModel):
    service_name: str = "digital-store"
    environment: str = "production"

    database_url: Optional[str] = None
    database_name: Optional[str] = None

    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    razorpay_api_url: str = "https://api.razorpay.com/v1"

    storage_url: Optional[str] = None
    storage_service_key: Optional[str] = None
    storage_buckets: List[str] = Field(default_factory=lambda: DEFAULT_BUCKETS.split(","))
    signed_url_ttl: int = Field(3600, gt=0)

    jwt_secret: Optional[str] = None
    jwt_audience: Optional[str] = None

    rate_limit_max: int = Field(5, ge=1)
    rate_limit_window_seconds: int = Field(600, ge=1)
    outbound_timeout_seconds: float = Field(10.0, gt=0)

    @property
    def gateway_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    @classmethod
    def from_env(cls) -> "Settings":
        buckets = os.getenv("STORAGE_BUCKETS", DEFAULT_BUCKETS)
        return cls(
            service_name=os.getenv("SERVICE_NAME", "digital-store"),
            environment=os.getenv("ENVIRONMENT", "production"),
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID"),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            razorpay_api_url=os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1"),
            storage_url=os.getenv("STORAGE_URL"),
            storage_service_key=os.getenv("STORAGE_SERVICE_KEY"),
            storage_buckets=[b.strip() for b in buckets.split(",") if b.strip()],
            signed_url_ttl=int(os.getenv("SIGNED_URL_TTL", 3600)),
            jwt_secret=os.getenv("JWT_SECRET"),
            jwt_audience=os.getenv("JWT_AUDIENCE"),
            rate_limit_max=int(os.getenv("RATE_LIMIT_MAX", 5)),
            rate_limit_window_seconds=int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 600)),
            outbound_timeout_seconds=float(os.getenv("OUTBOUND_TIMEOUT_SECONDS", 10)),
        )


def get_settings() -> Settings:
    return Settings.from_env()
