"""
Base Adapter Interface

Defines the capability interface shared by supplier and marketplace adapters.
Each adapter declares the capabilities it implements; calling any other
capability raises UnsupportedOperationError naming the capability and the
adapter type.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional

from CatalogBridge.adapters.http_client import AdapterHTTPClient, HTTPResponse
from CatalogBridge.exceptions import (
    AdapterConfigurationError,
    AdapterConnectionError,
    UnsupportedOperationError,
)


class AdapterType(str, Enum):
    """Closed set of adapter variants known to the registry"""
    RS24 = "rs24"
    OZON = "ozon"
    WILDBERRIES = "wildberries"
    YANDEX = "yandex"


class AdapterKind(str, Enum):
    SUPPLIER = "supplier"
    MARKETPLACE = "marketplace"


class AdapterCapability(Enum):
    """Capabilities that adapters can support"""
    TEST_CONNECTION = "test_connection"
    SEARCH_PRODUCTS = "search_products"
    SYNC_PRODUCTS = "sync_products"
    GET_PRICES = "get_prices"
    GET_STOCK_LEVELS = "get_stock_levels"
    GET_WAREHOUSES = "get_warehouses"
    GET_PRODUCT_DETAILS = "get_product_details"
    UPDATE_PRICES = "update_prices"  # Push prices to a marketplace
    UPDATE_STOCKS = "update_stocks"  # Push stock levels to a marketplace


@dataclass
class ExternalProductRecord:
    """Adapter-normalized product, not yet reconciled into the catalog"""
    external_id: Optional[str] = None
    sku: Optional[str] = None
    name: str = ""
    description: str = ""
    brand: Optional[str] = None
    barcode: Optional[str] = None
    category: Optional[str] = None
    attributes: Dict[str, Any] = None
    images: List[str] = None
    price: Optional[Decimal] = None
    currency: str = "RUB"
    stock: Optional[int] = None
    source_warehouse_id: Optional[str] = None
    raw: Dict[str, Any] = None

    def __post_init__(self):
        if self.attributes is None:
            self.attributes = {}
        if self.images is None:
            self.images = []
        if self.raw is None:
            self.raw = {}

    @property
    def identifier(self) -> Optional[str]:
        """Natural key used when reporting per-record errors"""
        return self.sku or self.external_id


@dataclass
class Warehouse:
    id: str
    name: str
    code: Optional[str] = None
    is_active: bool = True
    raw: Dict[str, Any] = None


@dataclass
class PriceQuote:
    product_id: str
    price: Optional[Decimal]
    retail_price: Optional[Decimal] = None
    mrc_price: Optional[Decimal] = None
    currency: str = "RUB"


@dataclass
class StockLevel:
    product_id: str
    available: int
    unit: Optional[str] = None
    partner_available: Optional[int] = None
    estimated_arrival: Optional[str] = None


@dataclass
class ProductPage:
    products: List[ExternalProductRecord]
    page: int
    total_pages: int
    total_items: int
    has_next_page: bool


@dataclass
class StockPage:
    stocks: List[StockLevel]
    page: int
    total_pages: int
    total_items: int
    has_next_page: bool


@dataclass
class SyncResult:
    success: bool
    products: List[ExternalProductRecord] = None
    warehouses: List[Warehouse] = None
    stats: Dict[str, Any] = None

    def __post_init__(self):
        if self.products is None:
            self.products = []
        if self.warehouses is None:
            self.warehouses = []
        if self.stats is None:
            self.stats = {}


@dataclass
class ConnectionTestResult:
    success: bool
    message: str
    response_time_ms: Optional[int] = None
    details: Dict[str, Any] = None

    def __post_init__(self):
        if self.details is None:
            self.details = {}


@dataclass
class AdapterInfo:
    """Information about an adapter"""
    name: str
    display_name: str
    kind: AdapterKind
    description: str
    website_url: Optional[str] = None
    rate_limit_info: Optional[str] = None
    required_config: List[str] = None

    def __post_init__(self):
        if self.required_config is None:
            self.required_config = []


def parse_price(value: Any) -> Optional[Decimal]:
    """Parse vendor price values such as 12.5, "12,50" or "1 200.00"."""
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    text = str(value).replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    return price if price.is_finite() else None


def parse_quantity(value: Any) -> int:
    """Parse vendor stock quantities; unparseable or negative values become 0."""
    try:
        quantity = int(float(str(value).replace(",", ".")))
    except (TypeError, ValueError, OverflowError):
        return 0
    return max(quantity, 0)


def chunked(items: List[Any], size: int) -> Iterator[List[Any]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BaseAdapter(ABC):
    """
    Abstract base class for supplier and marketplace adapters.

    Adapters are constructed per use with already-decrypted config and hold
    an HTTP session until close() is called.
    """

    adapter_type: AdapterType = None
    base_url: str = ""

    def __init__(self, config: Dict[str, Any]):
        self._config = dict(config or {})
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")
        self._http: Optional[AdapterHTTPClient] = None
        self.timeout = int(self._config.get("timeout") or 30)

        missing = [name for name in self.get_adapter_info().required_config if not self._config.get(name)]
        if missing:
            raise AdapterConfigurationError(
                f"{self.type_code}: missing required config: {', '.join(missing)}",
                adapter_type=self.type_code,
                missing_fields=missing,
            )

    @property
    def type_code(self) -> str:
        return self.adapter_type.value if self.adapter_type else self.__class__.__name__

    # ========== Adapter Information ==========

    @classmethod
    @abstractmethod
    def describe(cls) -> AdapterInfo:
        """Static adapter information, available without credentials"""
        pass

    def get_adapter_info(self) -> AdapterInfo:
        return self.describe()

    @abstractmethod
    def get_capabilities(self) -> List[AdapterCapability]:
        pass

    def supports(self, capability: AdapterCapability) -> bool:
        return capability in self.get_capabilities()

    def _unsupported(self, capability: AdapterCapability) -> UnsupportedOperationError:
        return UnsupportedOperationError(
            f"Adapter '{self.type_code}' does not support '{capability.value}'",
            adapter_type=self.type_code,
            capability=capability.value,
        )

    # ========== Capability Interface ==========

    async def test_connection(self) -> ConnectionTestResult:
        raise self._unsupported(AdapterCapability.TEST_CONNECTION)

    async def search_products(self, query: str, **options) -> List[ExternalProductRecord]:
        raise self._unsupported(AdapterCapability.SEARCH_PRODUCTS)

    async def sync_products(
        self,
        brands: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        update_existing: bool = False,
        warehouse_ids: Optional[List[str]] = None,
        **options,
    ) -> SyncResult:
        raise self._unsupported(AdapterCapability.SYNC_PRODUCTS)

    async def get_prices(self, identifiers: List[str]) -> List[PriceQuote]:
        raise self._unsupported(AdapterCapability.GET_PRICES)

    async def get_stock_levels(self, identifiers: List[str], warehouse_id: Optional[str] = None) -> List[StockLevel]:
        raise self._unsupported(AdapterCapability.GET_STOCK_LEVELS)

    async def get_warehouses(self) -> List[Warehouse]:
        raise self._unsupported(AdapterCapability.GET_WAREHOUSES)

    async def get_product_details(self, identifier: str) -> Optional[ExternalProductRecord]:
        raise self._unsupported(AdapterCapability.GET_PRODUCT_DETAILS)

    async def update_prices(self, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        raise self._unsupported(AdapterCapability.UPDATE_PRICES)

    async def update_stocks(self, updates: List[Dict[str, Any]], warehouse_id: Optional[str] = None) -> Dict[str, Any]:
        raise self._unsupported(AdapterCapability.UPDATE_STOCKS)

    # ========== HTTP Helpers ==========

    def _default_headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "User-Agent": "CatalogBridge/1.0"}

    def _create_http_client(self) -> AdapterHTTPClient:
        return AdapterHTTPClient(
            adapter_type=self.type_code,
            base_url=self._config.get("base_url") or self.base_url,
            default_timeout=self.timeout,
            default_headers=self._default_headers(),
        )

    def _get_http(self) -> AdapterHTTPClient:
        if self._http is None:
            self._http = self._create_http_client()
        return self._http

    def _raise_for_status(self, response: HTTPResponse, endpoint: str) -> None:
        if response.success:
            return
        message = response.error_message()
        self.logger.error(f"{self.type_code} API error {response.status} on {endpoint}: {message}")
        raise AdapterConnectionError(
            f"{self.type_code} API error ({response.status}): {message}",
            adapter_type=self.type_code,
            endpoint=endpoint,
            status=response.status,
        )

    async def _call(self, method: str, endpoint: str, **kwargs) -> HTTPResponse:
        response = await self._get_http().request(method, endpoint, **kwargs)
        self._raise_for_status(response, endpoint)
        return response

    # ========== Cleanup ==========

    async def close(self):
        """Clean up resources"""
        if self._http is not None:
            await self._http.close()
            self._http = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def unique_by_external_id(records: Iterable[ExternalProductRecord]) -> List[ExternalProductRecord]:
    """Keep the first record per external id; records without one are kept as-is."""
    seen = set()
    result = []
    for record in records:
        if record.external_id:
            if record.external_id in seen:
                continue
            seen.add(record.external_id)
        result.append(record)
    return result
