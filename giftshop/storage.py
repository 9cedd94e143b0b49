# giftshop/storage.py
import logging
import time
from typing import Dict, List, Optional

import httpx

from .errors import CatalogValidationError, RemoteServiceError

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/webp"}


def validate_image(content_type: Optional[str], size: int):
    """Reject an upload locally, before the storage service is ever called."""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise CatalogValidationError("Only JPEG, PNG, and WebP images are allowed", field="images")
    if size > MAX_IMAGE_BYTES:
        raise CatalogValidationError("Image size must be less than 5MB", field="images")


def temp_product_id(now_ms: Optional[int] = None) -> str:
    # uploads made before the product row exists
    return f"temp-{now_ms if now_ms is not None else int(time.time() * 1000)}"


def build_image_path(product_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    ext = filename.rsplit(".", 1)[-1] if "." in filename else "bin"
    ts = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"products/{product_id}/{ts}.{ext.lower()}"


class ImageStorage:
    """Public object bucket holding product photos."""

    def __init__(self, bucket: str = "product-images"):
        self.bucket = bucket

    async def upload(self, path: str, data: bytes, content_type: str):
        raise NotImplementedError

    def public_url(self, path: str) -> str:
        raise NotImplementedError

    async def remove(self, paths: List[str]):
        raise NotImplementedError

    def for_session(self, access_token: Optional[str]) -> "ImageStorage":
        """A view of this bucket that writes as the signed-in caller."""
        return self

    def path_from_url(self, url: str) -> Optional[str]:
        marker = f"/{self.bucket}/"
        if marker not in url:
            return None
        return url.split(marker, 1)[1] or None

    async def aclose(self):
        pass


class MemoryStorage(ImageStorage):
    def __init__(self, bucket: str = "product-images", base_url: str = "http://localhost:8085"):
        super().__init__(bucket)
        self.base_url = base_url.rstrip("/")
        self.objects: Dict[str, bytes] = {}

    async def upload(self, path, data, content_type):
        if path in self.objects:
            raise RemoteServiceError("upload image", FileExistsError(path))
        self.objects[path] = data

    def public_url(self, path):
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths):
        for p in paths:
            self.objects.pop(p, None)


class RestStorage(ImageStorage):
    def __init__(self, base_url: str, api_key: Optional[str] = None, bucket: str = "product-images",
                 timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None,
                 access_token: Optional[str] = None):
        super().__init__(bucket)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.client = client or httpx.AsyncClient(base_url=f"{self.base_url}/storage/v1", timeout=timeout)

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {}
        if self.api_key:
            headers["apikey"] = self.api_key
        token = self.access_token or self.api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        headers.update(extra or {})
        return headers

    def for_session(self, access_token):
        if not access_token:
            return self
        return RestStorage(self.base_url, self.api_key, self.bucket, client=self.client,
                           access_token=access_token)

    async def upload(self, path, data, content_type):
        headers = self._headers({"Content-Type": content_type, "cache-control": "max-age=3600", "x-upsert": "false"})
        try:
            r = await self.client.post(f"/object/{self.bucket}/{path}", content=data, headers=headers)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteServiceError("upload image", e) from e

    def public_url(self, path):
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def remove(self, paths):
        try:
            r = await self.client.request("DELETE", f"/object/{self.bucket}", json={"prefixes": paths},
                                          headers=self._headers())
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise RemoteServiceError("delete image", e) from e

    async def aclose(self):
        await self.client.aclose()


async def upload_product_image(storage: ImageStorage, product_id: Optional[str], filename: str,
                               content_type: Optional[str], data: bytes) -> str:
    validate_image(content_type, len(data))
    path = build_image_path(product_id or temp_product_id(), filename)
    try:
        await storage.upload(path, data, content_type)
    except RemoteServiceError:
        logger.exception("Upload error for %s", path)
        raise
    return storage.public_url(path)


async def delete_product_image(storage: ImageStorage, url: str) -> bool:
    path = storage.path_from_url(url)
    if not path:
        return False
    try:
        await storage.remove([path])
    except RemoteServiceError:
        logger.exception("Delete error for %s", path)
        raise
    return True
