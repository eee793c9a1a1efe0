"""
Wildberries supplier-portal marketplace adapter
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
)
from .registry import register_adapter
from CatalogBridge.exceptions import AdapterError

CARDS_PAGE_LIMIT = 100
DEFAULT_WAREHOUSE_ID = 507  # Koledino


@register_adapter(AdapterType.WILDBERRIES)
class WildberriesAdapter(BaseAdapter):
    """Wildberries marketplace: card read-back, warehouses, price and stock push"""

    base_url = "https://suppliers-api.wildberries.ru"

    @classmethod
    def describe(cls) -> AdapterInfo:
        return AdapterInfo(
            name="wildberries",
            display_name="Wildberries",
            kind=AdapterKind.MARKETPLACE,
            description="Wildberries supplier API",
            website_url="https://openapi.wildberries.ru",
            required_config=["api_key"],
        )

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.TEST_CONNECTION,
            AdapterCapability.SYNC_PRODUCTS,
            AdapterCapability.GET_WAREHOUSES,
            AdapterCapability.UPDATE_PRICES,
            AdapterCapability.UPDATE_STOCKS,
        ]

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        headers["Authorization"] = self._config["api_key"]
        return headers

    async def get_warehouses(self) -> List[Warehouse]:
        response = await self._call("GET", "/api/v3/warehouses")
        return [
            Warehouse(id=str(w.get("id")), name=w.get("name") or "", raw=w)
            for w in response.data.get("items") or []
        ]

    async def list_cards(self, cursor: Optional[Dict[str, Any]] = None, limit: int = CARDS_PAGE_LIMIT) -> Dict[str, Any]:
        sort_cursor = {"limit": limit}
        if cursor and cursor.get("updatedAt"):
            sort_cursor.update({"updatedAt": cursor["updatedAt"], "nmID": cursor.get("nmID")})
        payload = {"sort": {"cursor": sort_cursor, "filter": {"withPhoto": -1}}}

        response = await self._call("POST", "/content/v1/cards/cursor/list", json=payload)
        data = response.data.get("data") or {}
        return {"cards": data.get("cards") or [], "cursor": data.get("cursor") or {}}

    async def sync_products(
        self,
        brands: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        update_existing: bool = False,
        warehouse_ids: Optional[List[str]] = None,
        **options,
    ) -> SyncResult:
        products: List[ExternalProductRecord] = []
        cursor: Optional[Dict[str, Any]] = None
        while True:
            page = await self.list_cards(cursor=cursor)
            products.extend(self.transform_card(card) for card in page["cards"])
            next_cursor = page["cursor"]
            if len(page["cards"]) < CARDS_PAGE_LIMIT or not next_cursor.get("updatedAt"):
                break
            cursor = next_cursor

        if brands:
            wanted = {b.lower() for b in brands}
            products = [p for p in products if p.brand and p.brand.lower() in wanted]

        return SyncResult(success=True, products=products, stats={"total_products": len(products)})

    async def update_prices(self, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        prices = [
            {
                "nmId": int(update["product_id"]),
                "price": int(round(float(update["price"]))),
                "discount": int(update.get("discount") or 0),
                "promoCode": update.get("promo_code") or "",
            }
            for update in updates
        ]
        response = await self._call("POST", "/public/api/v1/prices", json=prices)
        return response.data

    async def update_stocks(self, updates: List[Dict[str, Any]], warehouse_id: Optional[str] = None) -> Dict[str, Any]:
        stocks = [
            {
                "barcode": update["barcode"],
                "stock": int(update["quantity"]),
                "warehouseId": int(update.get("warehouse_id") or warehouse_id or DEFAULT_WAREHOUSE_ID),
            }
            for update in updates
        ]
        response = await self._call("PUT", "/api/v3/stocks", json={"stocks": stocks})
        return response.data

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
    def transform_card(card: Dict[str, Any]) -> ExternalProductRecord:
        sizes = card.get("sizes") or []
        skus = sizes[0].get("skus") if sizes else None
        attributes = {}
        for characteristic in card.get("characteristics") or []:
            attributes.update({k: v for k, v in characteristic.items()})
        return ExternalProductRecord(
            external_id=str(card["nmID"]) if card.get("nmID") is not None else None,
            sku=card.get("vendorCode"),
            name=card.get("title") or card.get("object") or "",
            description=card.get("description") or "",
            brand=card.get("brand"),
            barcode=skus[0] if skus else None,
            category=card.get("object"),
            attributes=attributes,
            images=list(card.get("mediaFiles") or []),
            raw=card,
        )
