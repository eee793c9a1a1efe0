"""
HTTP Client for Supplier and Marketplace Adapters

Provides consistent HTTP operations across all adapter implementations:
- Session management with automatic cleanup
- Defensive null safety for JSON responses
- Timeout handling
- Vendor errors surfaced as AdapterConnectionError

Requests are never retried here; retry policy belongs to the caller.
"""

import asyncio
import aiohttp
import json
import logging
import time
from dataclasses import dataclass
from typing import Dict, Any, Optional

from CatalogBridge.exceptions import AdapterConnectionError

logger = logging.getLogger(__name__)


@dataclass
class HTTPResponse:
    """Standardized HTTP response wrapper"""
    status: int
    data: Dict[str, Any]
    headers: Dict[str, str]
    url: str
    duration_ms: int
    success: bool = True
    raw_content: Optional[str] = None

    @classmethod
    def from_aiohttp_response(
        cls, response: aiohttp.ClientResponse, data: Dict[str, Any], duration_ms: int, raw_content: Optional[str] = None
    ):
        """Create HTTPResponse from aiohttp response"""
        return cls(
            status=response.status,
            data=data,
            headers={k.lower(): v for k, v in response.headers.items()},
            url=str(response.url),
            duration_ms=duration_ms,
            success=200 <= response.status < 300,
            raw_content=raw_content,
        )

    def error_message(self) -> str:
        """Best-effort extraction of the vendor's error text"""
        data = self.data or {}
        for key in ("message", "error", "errorText", "detail"):
            value = data.get(key)
            if isinstance(value, dict):
                value = value.get("message")
            if value:
                return str(value)
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            return str(first.get("message", first)) if isinstance(first, dict) else str(first)
        if self.raw_content:
            return self.raw_content[:200]
        return f"HTTP {self.status}"


class AdapterHTTPClient:
    """
    HTTP client shared by all adapters.

    Features:
    - Lazily created aiohttp session with default headers (auth lives here)
    - Defensive JSON parsing: lists are wrapped as {"items": [...]}
    - Network errors and timeouts raise AdapterConnectionError immediately
    """

    def __init__(
        self,
        adapter_type: str,
        base_url: str,
        default_timeout: int = 30,
        default_headers: Optional[Dict[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
    ):
        self.adapter_type = adapter_type
        self.base_url = base_url.rstrip("/")
        self.default_timeout = default_timeout
        self.default_headers = default_headers or {}
        self.auth = auth

        self._session: Optional[aiohttp.ClientSession] = None

        logger.debug(f"Initialized HTTP client for adapter: {adapter_type}")

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session with proper configuration"""
        if not self._session or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.default_timeout, sock_connect=10)
            connector = aiohttp.TCPConnector(limit=20, limit_per_host=10, enable_cleanup_closed=True)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                connector=connector,
                headers=self.default_headers,
                auth=self.auth,
            )
        return self._session

    def _safe_json_parse(self, response_text: str) -> Dict[str, Any]:
        """Safely parse JSON response with defensive null handling."""
        if not response_text:
            return {}
        try:
            parsed = json.loads(response_text)
        except (json.JSONDecodeError, TypeError, ValueError):
            return {}

        if parsed is None:
            return {}
        if isinstance(parsed, dict):
            return parsed
        elif isinstance(parsed, list):
            return {"items": parsed}
        else:
            return {"value": parsed}

    def _build_url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(self, method: str, path: str, **kwargs) -> HTTPResponse:
        """
        Perform a single HTTP request.

        Returns the response for any HTTP status; only transport failures raise.
        """
        url = self._build_url(path)
        start_time = time.time()
        try:
            session = await self._get_session()
            async with session.request(method, url, **kwargs) as response:
                response_text = await response.text()
                duration_ms = int((time.time() - start_time) * 1000)
                data = self._safe_json_parse(response_text)
                return HTTPResponse.from_aiohttp_response(response, data, duration_ms, raw_content=response_text)
        except asyncio.TimeoutError:
            logger.error(f"{self.adapter_type} request timed out: {method} {path}")
            raise AdapterConnectionError(
                f"{self.adapter_type} request timed out", adapter_type=self.adapter_type, endpoint=path
            )
        except aiohttp.ClientError as e:
            logger.error(f"{self.adapter_type} request failed: {method} {path}: {e}")
            raise AdapterConnectionError(
                f"{self.adapter_type} request failed: {e}", adapter_type=self.adapter_type, endpoint=path
            )

    # ========== Cleanup ==========

    async def close(self):
        """Close HTTP session and cleanup resources"""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug(f"Closed HTTP session for adapter: {self.adapter_type}")
        self._session = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
