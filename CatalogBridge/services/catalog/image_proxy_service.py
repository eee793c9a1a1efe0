"""
Image Proxy

Supplier image URLs are never exposed to storefront clients. Instead each image
gets an opaque token (a credential envelope around {"u", "p", "i"}) and is served
through /api/images/proxy/{token}, optionally re-encoded as WebP.
"""

import base64
import io
import logging
import re
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple
from urllib.parse import quote

import httpx
from PIL import Image

from CatalogBridge.exceptions import (
    CredentialCipherError,
    ImageFetchError,
    InvalidImageTokenError,
    UnsafeImageUrlError,
)
from CatalogBridge.services.security.credential_cipher import CredentialCipher

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 21600  # 6 hours
FETCH_TIMEOUT = 15.0
MAX_CACHE_ENTRIES = 512
MAX_IMAGE_BYTES = 10 * 1024 * 1024
PROXY_PATH = "/api/images/proxy"

_SAFE_URL = re.compile(r"^https?://", re.IGNORECASE)


@dataclass
class ImageTokenPayload:
    source_url: str
    product_id: Optional[str] = None
    image_id: Optional[str] = None


@dataclass
class ProxiedImage:
    content: bytes
    content_type: str


class ImageProxyTokenService:
    """Issues and validates image proxy tokens"""

    def __init__(self, cipher: CredentialCipher, site_base_url: str):
        self.cipher = cipher
        self.site_base_url = site_base_url.rstrip("/")

    def make_token(self, source_url: str, product_id: Optional[str] = None, image_id: Optional[str] = None) -> str:
        return self.cipher.encrypt({"u": source_url, "p": product_id, "i": image_id})

    def build_proxy_url(self, source_url: str, product_id: Optional[str] = None, image_id: Optional[str] = None) -> str:
        token = self.make_token(source_url, product_id, image_id)
        return f"{self.site_base_url}{PROXY_PATH}/{quote(token, safe='')}"

    def resolve_token(self, token: str) -> ImageTokenPayload:
        """
        Decrypt a token and validate its target.

        The envelope is authenticated before anything inside it is inspected,
        so a forged token is reported as invalid rather than unsafe.

        Raises:
            InvalidImageTokenError: token is malformed, forged or not an image payload
            UnsafeImageUrlError: the payload URL is not http(s)
        """
        try:
            payload = self.cipher.decrypt(token)
        except CredentialCipherError as e:
            logger.debug(f"Rejected image token: {e.message}")
            raise InvalidImageTokenError()

        if not isinstance(payload, dict) or not isinstance(payload.get("u"), str):
            raise InvalidImageTokenError("Malformed image token")

        source_url = payload["u"].strip()
        if not _SAFE_URL.match(source_url):
            logger.warning("Image token points at a non-http(s) URL")
            raise UnsafeImageUrlError()

        return ImageTokenPayload(source_url=source_url, product_id=payload.get("p"), image_id=payload.get("i"))


class ImageProxyService:
    """Fetches, converts and caches proxied images"""

    def __init__(self, token_service: ImageProxyTokenService, cache_ttl_seconds: int = DEFAULT_CACHE_TTL,
                 fetch_timeout: float = FETCH_TIMEOUT, max_image_bytes: int = MAX_IMAGE_BYTES,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token_service = token_service
        self.cache_ttl_seconds = cache_ttl_seconds
        self.fetch_timeout = fetch_timeout
        self.max_image_bytes = max_image_bytes
        self.transport = transport
        self._cache: Dict[str, Tuple[float, ProxiedImage]] = {}

    @staticmethod
    def cache_key(source_url: str) -> str:
        return "img:" + base64.urlsafe_b64encode(source_url.encode("utf-8")).decode("ascii")

    async def fetch(self, token: str, accept_header: Optional[str] = None) -> ProxiedImage:
        payload = self.token_service.resolve_token(token)
        key = self.cache_key(payload.source_url)
        wants_webp = "image/webp" in (accept_header or "").lower()

        if wants_webp:
            cached = self._cache_get(f"{key}:webp")
            if cached:
                return cached

        original = self._cache_get(key)
        if original is None:
            original = await self._download(payload.source_url)
            self._cache_set(key, original)

        if not wants_webp or original.content_type == "image/webp":
            return original

        webp = self._convert_to_webp(original.content)
        if webp is None:
            return original

        converted = ProxiedImage(content=webp, content_type="image/webp")
        self._cache_set(f"{key}:webp", converted)
        return converted

    async def _download(self, source_url: str) -> ProxiedImage:
        try:
            async with httpx.AsyncClient(
                timeout=self.fetch_timeout,
                follow_redirects=True,
                headers={"User-Agent": "CatalogBridge/1.0 (Image Proxy)", "Accept": "image/*,*/*"},
                transport=self.transport,
            ) as client:
                async with client.stream("GET", source_url) as response:
                    if response.status_code != 200:
                        logger.warning(f"Image fetch failed: HTTP {response.status_code}")
                        raise ImageFetchError(f"Failed to fetch image: HTTP {response.status_code}")

                    declared = response.headers.get("content-length", "")
                    if declared.isdigit() and int(declared) > self.max_image_bytes:
                        raise self._too_large()

                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_image_bytes:
                            raise self._too_large()
                    content_type = response.headers.get("content-type", "").split(";")[0].strip()
        except httpx.HTTPError as e:
            logger.warning(f"Image fetch failed: {type(e).__name__}")
            raise ImageFetchError(f"Failed to fetch image: {type(e).__name__}")

        return ProxiedImage(content=bytes(body), content_type=content_type or "application/octet-stream")

    def _too_large(self) -> ImageFetchError:
        logger.warning(f"Image fetch aborted: body exceeds {self.max_image_bytes} bytes")
        return ImageFetchError(f"Image exceeds {self.max_image_bytes} bytes")

    @staticmethod
    def _convert_to_webp(content: bytes) -> Optional[bytes]:
        try:
            with Image.open(io.BytesIO(content)) as image:
                if image.mode not in ("RGB", "RGBA"):
                    image = image.convert("RGBA")
                output = io.BytesIO()
                image.save(output, "WEBP", quality=85)
                return output.getvalue()
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            # Serve the original bytes
            logger.debug(f"WebP conversion skipped: {e}")
            return None

    def _cache_get(self, key: str) -> Optional[ProxiedImage]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        expires_at, image = entry
        if expires_at <= time.monotonic():
            del self._cache[key]
            return None
        return image

    def _cache_set(self, key: str, image: ProxiedImage) -> None:
        if len(self._cache) >= MAX_CACHE_ENTRIES:
            oldest = min(self._cache, key=lambda k: self._cache[k][0])
            del self._cache[oldest]
        self._cache[key] = (time.monotonic() + self.cache_ttl_seconds, image)

    def clear_cache(self) -> None:
        self._cache.clear()
