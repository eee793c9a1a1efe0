"""
RS24 (Russian Svet) supplier adapter

Implements the catalog, price, stock and specification endpoints of the
cdis.russvet.ru/rs API. Authentication is HTTP Basic; the session carrying the
credentials is created lazily and re-established once on a 401.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp

from .base import (
    AdapterCapability,
    AdapterInfo,
    AdapterKind,
    AdapterType,
    BaseAdapter,
    ConnectionTestResult,
    ExternalProductRecord,
    PriceQuote,
    ProductPage,
    StockLevel,
    StockPage,
    SyncResult,
    Warehouse,
    chunked,
    parse_price,
    parse_quantity,
    unique_by_external_id,
)
from .http_client import AdapterHTTPClient, HTTPResponse
from .registry import register_adapter
from CatalogBridge.exceptions import AdapterConnectionError, AdapterError

logger = logging.getLogger(__name__)

PRICE_BATCH_SIZE = 50
MAX_POSITION_ROWS = 1000
MAX_RESIDUE_ROWS = 200
MAX_RESIDUE_ROWS_WITH_PARTNER = 90
MAX_PARTNER_STOCK_ROWS = 500
BRAND_SCAN_WAREHOUSES = 3


@register_adapter(AdapterType.RS24)
class RS24Adapter(BaseAdapter):
    """RS24 supplier API implementation"""

    base_url = "https://cdis.russvet.ru/rs"

    def __init__(self, config: Dict[str, Any]):
        config = dict(config or {})
        if not config.get("login") and config.get("username"):
            config["login"] = config["username"]
        super().__init__(config)
        self.login = self._config["login"]
        self.password = self._config["password"]
        self.timeout = int(self._config.get("timeout") or 60)

    @classmethod
    def describe(cls) -> AdapterInfo:
        return AdapterInfo(
            name="rs24",
            display_name="Russian Svet (RS24)",
            kind=AdapterKind.SUPPLIER,
            description="Electrical equipment distributor: catalog, prices, warehouse stock and specifications",
            website_url="https://cdis.russvet.ru/rs",
            rate_limit_info="150 requests per 30 seconds; exceeding it blocks access for 1 hour",
            required_config=["login", "password"],
        )

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.TEST_CONNECTION,
            AdapterCapability.SEARCH_PRODUCTS,
            AdapterCapability.SYNC_PRODUCTS,
            AdapterCapability.GET_PRICES,
            AdapterCapability.GET_STOCK_LEVELS,
            AdapterCapability.GET_WAREHOUSES,
            AdapterCapability.GET_PRODUCT_DETAILS,
        ]

    # ========== Session Handling ==========

    def _create_http_client(self) -> AdapterHTTPClient:
        return AdapterHTTPClient(
            adapter_type=self.type_code,
            base_url=self._config.get("base_url") or self.base_url,
            default_timeout=self.timeout,
            default_headers=self._default_headers(),
            auth=aiohttp.BasicAuth(self.login, self.password),
        )

    async def _rs_call(self, method: str, endpoint: str, **kwargs) -> HTTPResponse:
        response = await self._get_http().request(method, endpoint, **kwargs)

        if response.status == 401:
            self.logger.warning("RS24 session rejected, re-establishing")
            await self.close()
            response = await self._get_http().request(method, endpoint, **kwargs)
            if response.status == 401:
                raise AdapterConnectionError(
                    "RS24 authentication failed. Check login and password.",
                    adapter_type=self.type_code,
                    endpoint=endpoint,
                    status=401,
                )

        if response.status == 403:
            self.logger.error("RS24 API access blocked - rate limit exceeded")
            raise AdapterConnectionError(
                "RS24 API access blocked due to rate limit. Try again in 1 hour.",
                adapter_type=self.type_code,
                endpoint=endpoint,
                status=403,
            )

        self._raise_for_status(response, endpoint)
        return response

    def _warehouse_or_default(self, warehouse_id: Optional[str]) -> str:
        warehouse_id = warehouse_id or self._config.get("warehouse_id")
        if not warehouse_id:
            raise ValueError("warehouse_id is required")
        return str(warehouse_id)

    # ========== Catalog ==========

    async def get_warehouses(self) -> List[Warehouse]:
        response = await self._rs_call("GET", "/stocks")
        stocks = response.data.get("Stocks") or []
        return [
            Warehouse(
                id=str(stock.get("ORGANIZATION_ID")),
                code=str(stock.get("ORGANIZATION_ID")),
                name=stock.get("NAME") or "",
                raw=stock,
            )
            for stock in stocks
        ]

    async def get_products(
        self,
        warehouse_id: Optional[str] = None,
        category: str = "all",
        page: int = 1,
        rows: int = MAX_POSITION_ROWS,
        brands: Optional[List[str]] = None,
    ) -> ProductPage:
        """
        Fetch one page of the warehouse catalog.

        category is one of instock, custom, partnerwhstock, all or custcode.
        Callers page until has_next_page is False.
        """
        warehouse_id = self._warehouse_or_default(warehouse_id)
        page = max(1, int(page))
        params = {"page": page, "rows": min(int(rows), MAX_POSITION_ROWS)}

        response = await self._rs_call("GET", f"/position/{warehouse_id}/{category}", params=params)
        items = response.data.get("items") or []
        meta = response.data.get("meta") or {}
        last_page = int(meta.get("last_page") or 1)

        products = [self.transform_product(item) for item in items]
        if brands:
            wanted = [brand.lower() for brand in brands if brand]
            products = [p for p in products if p.brand and any(b in p.brand.lower() for b in wanted)]

        return ProductPage(
            products=products,
            page=page,
            total_pages=last_page,
            total_items=int(meta.get("rows_count") or len(items)),
            has_next_page=bool(items) and page < last_page,
        )

    async def search_products(self, query: str, **options) -> List[ExternalProductRecord]:
        """Point lookup by vendor code; one code may match several variants"""
        response = await self._rs_call("POST", "/finditem", json={"vendorCode": query})
        return [self.transform_product(item) for item in response.data.get("items") or []]

    async def get_product_details(self, identifier: str) -> Optional[ExternalProductRecord]:
        response = await self._rs_call("GET", f"/specs/{identifier}")
        if not response.data:
            return None
        return self.transform_specs(identifier, response.data)

    async def get_brands(self, pages: int = 5, warehouse_ids: Optional[List[str]] = None) -> List[str]:
        """
        Collect the brand spellings RS24 uses, sorted.

        Scans up to `pages` catalog pages of the requested warehouses (the
        first few active ones when none are given). A failing page ends the
        scan of that warehouse.
        """
        warehouses = await self.get_warehouses()
        if warehouse_ids:
            wanted = {str(w) for w in warehouse_ids}
            warehouses = [w for w in warehouses if w.id in wanted]
        else:
            warehouses = [w for w in warehouses if w.is_active][:BRAND_SCAN_WAREHOUSES]

        found = set()
        for warehouse in warehouses:
            for page in range(1, pages + 1):
                try:
                    result = await self.get_products(warehouse_id=warehouse.id, page=page, rows=MAX_POSITION_ROWS)
                except AdapterError as e:
                    logger.warning(f"RS24 brand scan stopped at page {page} of warehouse {warehouse.id}: {e.message}")
                    break
                found.update(p.brand.strip() for p in result.products if p.brand and p.brand.strip())
                if not result.has_next_page:
                    break

        logger.info(f"RS24 brand scan found {len(found)} brands in {len(warehouses)} warehouses")
        return sorted(found)

    # ========== Prices and Stock ==========

    async def get_prices(self, identifiers: List[str]) -> List[PriceQuote]:
        quotes: List[PriceQuote] = []
        codes = [str(code) for code in identifiers if code]

        for batch in chunked(codes, PRICE_BATCH_SIZE):
            payload = {"items": [int(code) if code.isdigit() else code for code in batch]}
            response = await self._rs_call("POST", "/massprice", json=payload)
            for item in response.data.get("items") or []:
                price_data = item.get("Price") or {}
                personal = parse_price(price_data.get("Personal"))
                retail = parse_price(price_data.get("Retail"))
                quotes.append(
                    PriceQuote(
                        product_id=str(item.get("RSCode")),
                        price=personal if personal else retail,
                        retail_price=retail,
                        mrc_price=parse_price(price_data.get("MRC")),
                    )
                )
        return quotes

    async def get_stock_levels(self, identifiers: List[str], warehouse_id: Optional[str] = None) -> List[StockLevel]:
        warehouse_id = self._warehouse_or_default(warehouse_id)
        levels = []
        for code in identifiers:
            response = await self._rs_call("GET", f"/residue/{warehouse_id}/{code}")
            level = self.transform_stock(response.data, default_code=str(code))
            levels.append(level)
        return levels

    async def get_all_stocks(
        self,
        warehouse_id: Optional[str] = None,
        page: int = 1,
        rows: int = MAX_RESIDUE_ROWS,
        category: str = "all",
        partnerstock: str = "Y",
    ) -> StockPage:
        """Full-catalog stock dump for one warehouse, paginated"""
        warehouse_id = self._warehouse_or_default(warehouse_id)
        page = max(1, int(page))
        max_rows = MAX_RESIDUE_ROWS_WITH_PARTNER if partnerstock == "Y" else MAX_RESIDUE_ROWS
        params = {"page": page, "rows": min(int(rows), max_rows), "category": category, "partnerstock": partnerstock}

        response = await self._rs_call("GET", f"/residue/all/{warehouse_id}", params=params)
        stocks = [self.transform_stock(residue) for residue in response.data.get("residues") or []]
        total_pages = int(response.headers.get("x-pagination-page-count") or 1)
        total_items = int(response.headers.get("x-pagination-total-count") or len(stocks))

        return StockPage(
            stocks=stocks,
            page=page,
            total_pages=total_pages,
            total_items=total_items,
            has_next_page=page < total_pages,
        )

    async def get_all_partner_warehouse_stock(
        self,
        warehouse_id: Optional[str] = None,
        page: int = 1,
        rows: int = MAX_PARTNER_STOCK_ROWS,
        availability: str = "instock",
    ) -> StockPage:
        """Manufacturer (partner) warehouse stock dump, paginated"""
        warehouse_id = self._warehouse_or_default(warehouse_id)
        page = max(1, int(page))
        params = {"page": page, "rows": min(int(rows), MAX_PARTNER_STOCK_ROWS), "availability": availability}

        response = await self._rs_call("GET", f"/partnerwhstock/all/{warehouse_id}", params=params)
        stocks = []
        for stock in response.data.get("partnerWarehouseStock") or []:
            quantity = parse_quantity(stock.get("partnerQuantity"))
            stocks.append(
                StockLevel(
                    product_id=str(stock.get("RSCode")),
                    available=quantity,
                    unit=stock.get("partnerUOM"),
                    partner_available=quantity,
                    estimated_arrival=stock.get("estimatedArrivalDate"),
                )
            )
        meta = response.data.get("meta") or {}
        last_page = int(meta.get("lastPage") or 1)

        return StockPage(
            stocks=stocks,
            page=page,
            total_pages=last_page,
            total_items=int(meta.get("rowCount") or len(stocks)),
            has_next_page=page < last_page,
        )

    # ========== Sync ==========

    async def sync_products(
        self,
        brands: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        update_existing: bool = False,
        warehouse_ids: Optional[List[str]] = None,
        with_prices: bool = True,
        with_specs: bool = False,
        with_stocks: bool = False,
        rows: int = MAX_POSITION_ROWS,
        **options,
    ) -> SyncResult:
        """
        Collect every product of the given brands across warehouses.

        Pages through /position for each warehouse and category, drops
        duplicates by external id and attaches supplier prices. with_specs
        merges ETIM class and certificates from /specs into the attributes;
        with_stocks fills stock from the product's source warehouse.
        Enrichment failures are recorded in stats["errors"].
        """
        logger.info(f"Starting RS24 product sync: brands={brands}, warehouses={warehouse_ids}")

        warehouses = await self.get_warehouses()
        if warehouse_ids:
            wanted = {str(w) for w in warehouse_ids}
            warehouses = [w for w in warehouses if w.id in wanted]
        else:
            warehouses = [w for w in warehouses if w.is_active]

        if not warehouses:
            raise AdapterConnectionError("No active RS24 warehouses found", adapter_type=self.type_code)

        stats = {"total_warehouses": len(warehouses), "processed_warehouses": 0, "total_products": 0, "errors": []}
        collected: List[ExternalProductRecord] = []
        last_error: Optional[AdapterError] = None

        for warehouse in warehouses:
            try:
                for category in categories or ["all"]:
                    page = 1
                    while True:
                        result = await self.get_products(
                            warehouse_id=warehouse.id, category=category, page=page, rows=rows, brands=brands
                        )
                        for product in result.products:
                            product.source_warehouse_id = warehouse.id
                        collected.extend(result.products)
                        if not result.has_next_page:
                            break
                        page += 1
                stats["processed_warehouses"] += 1
            except AdapterError as e:
                last_error = e
                stats["errors"].append(f"Warehouse {warehouse.name}: {e.message}")
                logger.error(f"RS24 sync failed for warehouse {warehouse.id}: {e.message}")

        if stats["processed_warehouses"] == 0 and last_error is not None:
            raise last_error

        products = unique_by_external_id(collected)
        stats["total_products"] = len(products)

        if with_prices and products:
            quotes = await self.get_prices([p.external_id for p in products if p.external_id])
            prices = {quote.product_id: quote.price for quote in quotes}
            for product in products:
                if product.external_id in prices:
                    product.price = prices[product.external_id]

        if with_specs:
            await self._attach_specs(products, stats)
        if with_stocks:
            await self._attach_stocks(products, stats)

        logger.info(f"RS24 sync completed: {len(products)} products from {stats['processed_warehouses']} warehouses")
        return SyncResult(success=True, products=products, warehouses=warehouses, stats=stats)

    async def _attach_specs(self, products: List[ExternalProductRecord], stats: Dict[str, Any]) -> None:
        for product in products:
            if not product.external_id:
                continue
            try:
                details = await self.get_product_details(product.external_id)
            except AdapterError as e:
                stats["errors"].append(f"Specs {product.external_id}: {e.message}")
                logger.warning(f"RS24 specs failed for {product.external_id}: {e.message}")
                continue
            if details is None:
                continue
            product.attributes.update(details.attributes)
            product.barcode = product.barcode or details.barcode
            product.description = product.description or details.description
            if not product.images:
                product.images = details.images

    async def _attach_stocks(self, products: List[ExternalProductRecord], stats: Dict[str, Any]) -> None:
        by_warehouse: Dict[str, List[ExternalProductRecord]] = {}
        for product in products:
            if product.external_id and product.source_warehouse_id:
                by_warehouse.setdefault(product.source_warehouse_id, []).append(product)

        for warehouse_id, group in by_warehouse.items():
            try:
                levels = await self.get_stock_levels([p.external_id for p in group], warehouse_id=warehouse_id)
            except AdapterError as e:
                stats["errors"].append(f"Stock {warehouse_id}: {e.message}")
                logger.warning(f"RS24 stock enrichment failed for warehouse {warehouse_id}: {e.message}")
                continue
            available = {level.product_id: level.available for level in levels}
            for product in group:
                product.stock = available.get(product.external_id)

    async def test_connection(self) -> ConnectionTestResult:
        start_time = time.time()
        try:
            warehouses = await self.get_warehouses()
            sample_count = 0
            if warehouses:
                sample = await self.get_products(warehouse_id=warehouses[0].id, page=1, rows=10)
                sample_count = len(sample.products)
        except AdapterError as e:
            logger.error(f"RS24 connection test failed: {e.message}")
            return ConnectionTestResult(success=False, message=e.message)

        return ConnectionTestResult(
            success=True,
            message="RS24 connection successful",
            response_time_ms=int((time.time() - start_time) * 1000),
            details={
                "warehouses_count": len(warehouses),
                "warehouses": [{"id": w.id, "name": w.name} for w in warehouses[:5]],
                "sample_products_count": sample_count,
            },
        )

    # ========== Transformation ==========

    @staticmethod
    def transform_product(data: Dict[str, Any]) -> ExternalProductRecord:
        code = data.get("CODE") or data.get("code")
        attributes = {
            "unit": data.get("UOM") or data.get("uom"),
            "unit_okei": data.get("UOM_OKEI") or data.get("uomOkei"),
            "multiplicity": data.get("MULTIPLICITY") or data.get("multiplicity"),
            "min_order_quantity": data.get("MIN_ORDER_QUANTITY"),
            "weight": data.get("weight"),
        }
        return ExternalProductRecord(
            external_id=str(code) if code is not None else None,
            sku=data.get("VENDOR_CODE") or data.get("vendorCode"),
            name=data.get("NAME") or data.get("name") or "",
            description=data.get("description") or "",
            brand=data.get("BRAND") or data.get("brand"),
            barcode=data.get("barcode"),
            category=data.get("CATEGORY") or data.get("category"),
            attributes={k: v for k, v in attributes.items() if v is not None},
            raw=data,
        )

    @staticmethod
    def transform_stock(data: Dict[str, Any], default_code: Optional[str] = None) -> StockLevel:
        partner = data.get("partnerQuantityInfo") or {}
        code = data.get("CODE") or data.get("productCode") or default_code
        return StockLevel(
            product_id=str(code),
            available=parse_quantity(data.get("Residue", data.get("RESIDUE"))),
            unit=data.get("UOM") or data.get("uom"),
            partner_available=parse_quantity(partner.get("partnerQuantity")) if partner else None,
            estimated_arrival=partner.get("estimatedArrivalDate") if partner else None,
        )

    @staticmethod
    def transform_specs(code: str, data: Dict[str, Any]) -> ExternalProductRecord:
        info = (data.get("INFO") or [{}])[0]

        attributes: Dict[str, Any] = {}
        for spec in data.get("SPECS") or []:
            value = spec.get("VALUE")
            if spec.get("UOM") and value is not None:
                value = f"{value} {spec['UOM']}"
            attributes[spec.get("NAME") or spec.get("FEATURE_CODE")] = value
        for key, source in (
            ("etim_class", "ETIM_CLASS"),
            ("etim_class_name", "ETIM_CLASS_NAME"),
            ("series", "SERIES"),
            ("origin_country", "ORIGIN_COUNTRY"),
            ("warranty", "WARRANTY"),
            ("unit", "PRIMARY_UOM"),
        ):
            if info.get(source) is not None:
                attributes[key] = info[source]
        certificates = [
            {"url": cert.get("URL"), "number": cert.get("CERT_NUM")} for cert in data.get("CERTIFICATE") or []
        ]
        if certificates:
            attributes["certificates"] = certificates

        barcodes = [bc.get("EAN") for bc in data.get("BARCODE") or [] if bc.get("EAN")]

        return ExternalProductRecord(
            external_id=str(code),
            sku=info.get("VENDOR_CODE"),
            name=info.get("DESCRIPTION") or "",
            description=info.get("LONG_DESCRIPTION") or info.get("DESCRIPTION") or "",
            brand=info.get("BRAND"),
            barcode=barcodes[0] if barcodes else None,
            attributes=attributes,
            images=[img.get("URL") for img in data.get("IMG") or [] if img.get("URL")],
            raw=data,
        )
