"""
Ozon Seller API marketplace adapter
"""

import time
from typing import Any, Dict, List, Optional

from .base import (
    AdapterCapability,
    AdapterInfo,
    AdapterKind,
    AdapterType,
    BaseAdapter,
    ConnectionTestResult,
    ExternalProductRecord,
    SyncResult,
    Warehouse,
    chunked,
    parse_price,
)
from .registry import register_adapter
from CatalogBridge.exceptions import AdapterConnectionError, AdapterError

PRODUCT_LIST_LIMIT = 100
PRODUCT_INFO_BATCH = 100


@register_adapter(AdapterType.OZON)
class OzonAdapter(BaseAdapter):
    """Ozon marketplace: catalog read-back, warehouses, price and stock push"""

    base_url = "https://api-seller.ozon.ru"

    @classmethod
    def describe(cls) -> AdapterInfo:
        return AdapterInfo(
            name="ozon",
            display_name="Ozon",
            kind=AdapterKind.MARKETPLACE,
            description="Ozon Seller API",
            website_url="https://docs.ozon.ru/api/seller/",
            required_config=["client_id", "api_key"],
        )

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.TEST_CONNECTION,
            AdapterCapability.SEARCH_PRODUCTS,
            AdapterCapability.SYNC_PRODUCTS,
            AdapterCapability.GET_WAREHOUSES,
            AdapterCapability.GET_PRODUCT_DETAILS,
            AdapterCapability.UPDATE_PRICES,
            AdapterCapability.UPDATE_STOCKS,
        ]

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        headers.update({"Client-Id": str(self._config["client_id"]), "Api-Key": self._config["api_key"]})
        return headers

    async def get_warehouses(self) -> List[Warehouse]:
        response = await self._call("POST", "/v1/warehouse/list", json={})
        warehouses = response.data.get("result") or []
        return [
            Warehouse(id=str(w.get("warehouse_id")), name=w.get("name") or "", is_active=True, raw=w)
            for w in warehouses
        ]

    async def list_products(self, last_id: str = "", limit: int = PRODUCT_LIST_LIMIT) -> Dict[str, Any]:
        payload = {"filter": {"visibility": "ALL"}, "last_id": last_id, "limit": limit}
        response = await self._call("POST", "/v2/product/list", json=payload)
        result = response.data.get("result") or {}
        return {
            "items": result.get("items") or [],
            "total": int(result.get("total") or 0),
            "last_id": result.get("last_id") or "",
        }

    async def get_product_info(self, offer_ids: List[str]) -> List[ExternalProductRecord]:
        response = await self._call("POST", "/v2/product/info/list", json={"offer_id": offer_ids})
        items = (response.data.get("result") or {}).get("items") or []
        return [self.transform_product(item) for item in items]

    async def search_products(self, query: str, **options) -> List[ExternalProductRecord]:
        record = await self.get_product_details(query)
        return [record] if record else []

    async def get_product_details(self, identifier: str) -> Optional[ExternalProductRecord]:
        response = await self._call("POST", "/v2/product/info", json={"offer_id": identifier})
        result = response.data.get("result")
        return self.transform_product(result) if result else None

    async def sync_products(
        self,
        brands: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        update_existing: bool = False,
        warehouse_ids: Optional[List[str]] = None,
        **options,
    ) -> SyncResult:
        offer_ids: List[str] = []
        last_id = ""
        while True:
            page = await self.list_products(last_id=last_id)
            offer_ids.extend(item.get("offer_id") for item in page["items"] if item.get("offer_id"))
            if not page["items"] or not page["last_id"] or page["last_id"] == last_id:
                break
            last_id = page["last_id"]

        products: List[ExternalProductRecord] = []
        for batch in chunked(offer_ids, PRODUCT_INFO_BATCH):
            products.extend(await self.get_product_info(batch))

        if brands:
            wanted = {b.lower() for b in brands}
            products = [p for p in products if p.brand and p.brand.lower() in wanted]

        return SyncResult(success=True, products=products, stats={"total_products": len(products)})

    async def update_prices(self, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        prices = [
            {
                "offer_id": str(update["product_id"]),
                "price": str(update["price"]),
                "old_price": str(update.get("old_price") or "0"),
                "premium_price": str(update.get("premium_price") or ""),
            }
            for update in updates
        ]
        response = await self._call("POST", "/v1/product/import/prices", json={"prices": prices})
        return {"result": response.data.get("result") or []}

    async def update_stocks(self, updates: List[Dict[str, Any]], warehouse_id: Optional[str] = None) -> Dict[str, Any]:
        stocks = []
        for update in updates:
            stock = {"offer_id": str(update["product_id"]), "stock": int(update["quantity"])}
            if warehouse_id or update.get("warehouse_id"):
                stock["warehouse_id"] = int(update.get("warehouse_id") or warehouse_id)
            stocks.append(stock)

        response = await self._call("POST", "/v2/products/stocks", json={"stocks": stocks})
        result = response.data.get("result") or []
        errors = [error for item in result for error in item.get("errors") or []]
        if errors:
            first = errors[0]
            raise AdapterConnectionError(
                f"Failed to update stock on Ozon: {first.get('message', first) if isinstance(first, dict) else first}",
                adapter_type=self.type_code,
                endpoint="/v2/products/stocks",
            )
        return {"result": result}

    async def test_connection(self) -> ConnectionTestResult:
        start_time = time.time()
        try:
            warehouses = await self.get_warehouses()
        except AdapterError as e:
            return ConnectionTestResult(success=False, message=e.message)
        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            response_time_ms=int((time.time() - start_time) * 1000),
            details={"warehouses_count": len(warehouses)},
        )

    @staticmethod
    def transform_product(item: Dict[str, Any]) -> ExternalProductRecord:
        images = list(item.get("images") or [])
        primary = item.get("primary_image")
        if primary:
            images = [primary] + [img for img in images if img != primary]
        barcode = item.get("barcode") or next(iter(item.get("barcodes") or []), None)
        return ExternalProductRecord(
            external_id=str(item["id"]) if item.get("id") is not None else None,
            sku=item.get("offer_id"),
            name=item.get("name") or "",
            brand=item.get("brand"),
            barcode=barcode,
            category=str(item["category_id"]) if item.get("category_id") else None,
            images=images,
            price=parse_price(item.get("price")),
            currency=item.get("currency_code") or "RUB",
            raw=item,
        )
