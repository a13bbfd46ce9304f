import hashlib
import hmac
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient
from jose import jwt

import main
from config import Settings, get_settings
from database import get_db
from ratelimit import RateLimiter
from storage import SignResult, SignedUrlMinter

RAZORPAY_SECRET = "rzp_test_secret"
JWT_SECRET = "jwt-test-secret"


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeStorageClient:
    """Signs paths only in buckets listed in ``available``."""

    def __init__(self, available=None):
        self.available = available if available is not None else {"digital-products"}
        self.calls = []

    def create_signed_url(self, bucket, path, expires_in):
        self.calls.append((bucket, path, expires_in))
        if bucket in self.available:
            return SignResult(url=f"https://storage.example/signed/{bucket}/{path}?token=abc&ttl={expires_in}")
        return SignResult(error="Object not found")


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc is not None:
            raise self.exc
        return self.response


class ExplodingDb:
    def __getitem__(self, name):
        raise AssertionError(f"database accessed: {name}")


def sign(order_id, payment_id, secret=RAZORPAY_SECRET):
    body = f"{order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def bearer(user_id):
    token = jwt.encode({"sub": user_id, "aud": "authenticated"}, JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def mongo():
    db = mongomock.MongoClient()["store_test"]
    now = datetime.now(timezone.utc)
    db["product"].insert_many([
        {"_id": "p1", "title": "Love Letter Templates", "slug": "love-letter-templates",
         "price": 299, "is_active": True, "featured": True, "category": "Templates",
         "image_url": "https://img.example/p1.jpg", "file_url": "products//p1.pdf",
         "created_at": now},
        {"_id": "p2", "title": "Couple Planner", "slug": "couple-planner", "price": 499,
         "is_active": True, "featured": False, "category": "Planners",
         "file_url": "https://abc.supabase.co/storage/v1/object/public/old-bucket/files//p2.zip",
         "created_at": now},
        {"_id": "p3", "title": "Retired Overlays", "slug": "retired-overlays", "price": 599,
         "is_active": False, "category": "Templates", "file_url": "products/p3.zip",
         "created_at": now},
        {"_id": "p4", "title": "Quiz Bundle", "slug": "quiz-bundle", "price": 399,
         "is_active": True, "category": "Templates", "created_at": now},
    ])
    return db


@pytest.fixture
def settings():
    return Settings(
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=RAZORPAY_SECRET,
        storage_url="https://storage.example",
        storage_service_key="service-key",
        jwt_secret=JWT_SECRET,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(5, 600, clock=clock)


@pytest.fixture
def storage_client():
    return FakeStorageClient()


@pytest.fixture
def client(mongo, settings, limiter, storage_client):
    main.app.dependency_overrides[get_db] = lambda: mongo
    main.app.dependency_overrides[get_settings] = lambda: settings
    main.app.dependency_overrides[main.get_rate_limiter] = lambda: limiter
    main.app.dependency_overrides[main.get_storage] = lambda: SignedUrlMinter(
        storage_client, settings.storage_buckets, settings.signed_url_ttl)
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def paid_order(client):
    def _create(items=None, headers=None, email="buyer@example.com"):
        body = {"items": items or [{"id": "p1"}, {"id": "p2"}, {"id": "p4"}], "customerEmail": email}
        res = client.post("/api/create-order", json=body, headers=headers or {})
        assert res.status_code == 200, res.text
        return res.json()["orderId"]
    return _create
