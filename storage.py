"""
Signed download URLs for purchased files.

Product records point at files in one of several buckets: older records hold
a full public/sign URL with the bucket embedded, newer ones a bare path. The
minter tries the embedded bucket first and then every known bucket in order,
stopping at the first one that signs the path.
"""
import re
from typing import List, NamedTuple, Optional
from urllib.parse import quote, unquote, urlsplit

import requests

from config import Settings
from errors import FileNotAvailable, StorageError
from logs import log_json

STORAGE_URL_PATTERN = re.compile(r"/storage/v1/object/(?:public|sign|authenticated)/([^/]+)/(.+)$")


class FileLocation(NamedTuple):
    bucket: Optional[str]
    path: str


class SignResult(NamedTuple):
    url: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.url is not None


def clean_path(path: str) -> str:
    return re.sub(r"/+", "/", path.lstrip("/"))


def parse_file_reference(reference: str) -> FileLocation:
    reference = (reference or "").strip()
    bucket = None
    path = reference
    if "://" in reference or reference.startswith("/storage/"):
        path_part = urlsplit(reference).path
        match = STORAGE_URL_PATTERN.search(path_part)
        if match:
            bucket, path = unquote(match.group(1)), unquote(match.group(2))
    path = clean_path(path)
    if not path:
        raise FileNotAvailable(detail="empty file reference")
    return FileLocation(bucket=bucket, path=path)


class SupabaseStorageClient:
    """Signs object paths against the storage REST API with the service key."""

    def __init__(self, base_url: str, service_key: str, timeout: float = 10, session=None):
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def create_signed_url(self, bucket: str, path: str, expires_in: int) -> SignResult:
        endpoint = f"{self.base_url}/storage/v1/object/sign/{quote(bucket)}/{quote(path)}"
        try:
            response = self.session.post(
                endpoint,
                json={"expiresIn": expires_in},
                headers={
                    "Authorization": f"Bearer {self.service_key}",
                    "apikey": self.service_key,
                },
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            return SignResult(error=f"timeout after {self.timeout}s")
        except requests.exceptions.RequestException as e:
            return SignResult(error=f"{type(e).__name__}: {e}")

        if not response.ok:
            return SignResult(error=f"HTTP {response.status_code}: {response.text[:200]}")
        try:
            signed = response.json().get("signedURL")
        except ValueError:
            signed = None
        if not signed:
            return SignResult(error="no signedURL in response")
        if signed.startswith("http"):
            return SignResult(url=signed)
        return SignResult(url=f"{self.base_url}/storage/v1{signed}")


class BucketResolver:
    def __init__(self, bucket: str, client):
        self.bucket = bucket
        self.client = client

    def sign(self, path: str, expires_in: int) -> SignResult:
        return self.client.create_signed_url(self.bucket, path, expires_in)


class SignedUrlMinter:
    def __init__(self, client, buckets: List[str], expires_in: int = 3600):
        self.client = client
        self.buckets = list(buckets)
        self.expires_in = expires_in

    @classmethod
    def from_settings(cls, settings: Settings, session=None) -> "SignedUrlMinter":
        client = None
        if settings.storage_url and settings.storage_service_key:
            client = SupabaseStorageClient(settings.storage_url, settings.storage_service_key,
                                           timeout=settings.outbound_timeout_seconds,
                                           session=session)
        return cls(client, settings.storage_buckets, expires_in=settings.signed_url_ttl)

    def resolvers_for(self, location: FileLocation) -> List[BucketResolver]:
        names = []
        if location.bucket:
            names.append(location.bucket)
        for name in self.buckets:
            if name not in names:
                names.append(name)
        return [BucketResolver(name, self.client) for name in names]

    def mint(self, reference: str) -> str:
        if self.client is None:
            raise StorageError(detail="storage not configured")

        location = parse_file_reference(reference)
        last_error = None
        for resolver in self.resolvers_for(location):
            result = resolver.sign(location.path, self.expires_in)
            if result.ok:
                log_json("INFO", "Signed URL generated", bucket=resolver.bucket,
                         expires_in=self.expires_in)
                return result.url
            log_json("INFO", "Bucket could not sign file", bucket=resolver.bucket,
                     reason=result.error)
            last_error = f"{resolver.bucket}: {result.error}"

        raise StorageError(detail=last_error)
