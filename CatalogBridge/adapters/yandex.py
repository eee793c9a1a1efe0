"""
Yandex Market Partner API marketplace adapter
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .base import (
    AdapterCapability,
    AdapterInfo,
    AdapterKind,
    AdapterType,
    BaseAdapter,
    ConnectionTestResult,
    ExternalProductRecord,
    StockLevel,
    SyncResult,
    Warehouse,
    parse_price,
    parse_quantity,
)
from .registry import register_adapter
from CatalogBridge.exceptions import AdapterConfigurationError, AdapterError

OFFER_MAPPINGS_PAGE_SIZE = 200


@register_adapter(AdapterType.YANDEX)
class YandexMarketAdapter(BaseAdapter):
    """
    Yandex Market marketplace.

    Authenticates with an Api-Key (preferred) or a legacy OAuth token. Campaign
    scoped calls need campaign_id; business-level price updates need business_id.
    """

    base_url = "https://api.partner.market.yandex.ru"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self.api_key = self._config.get("api_key") or self._config.get("apiKey")
        self.oauth_token = self._config.get("oauth_token")
        self.campaign_id = self._config.get("campaign_id") or self._config.get("campaignId")
        self.business_id = self._config.get("business_id") or self._config.get("businessId")
        self.integration_name = self._config.get("integration_name") or "CatalogBridge/1.0"
        self.timeout = int(self._config.get("timeout") or 45)

        if not self.api_key and not self.oauth_token:
            raise AdapterConfigurationError(
                "yandex: api_key (or legacy oauth_token) is required",
                adapter_type=self.type_code,
                missing_fields=["api_key"],
            )

    @classmethod
    def describe(cls) -> AdapterInfo:
        return AdapterInfo(
            name="yandex",
            display_name="Yandex Market",
            kind=AdapterKind.MARKETPLACE,
            description="Yandex Market Partner API",
            website_url="https://yandex.ru/dev/market/partner-api/",
            rate_limit_info="Responds 420/429 when throttled",
        )

    def get_capabilities(self) -> List[AdapterCapability]:
        return [
            AdapterCapability.TEST_CONNECTION,
            AdapterCapability.SYNC_PRODUCTS,
            AdapterCapability.GET_STOCK_LEVELS,
            AdapterCapability.GET_WAREHOUSES,
            AdapterCapability.UPDATE_PRICES,
            AdapterCapability.UPDATE_STOCKS,
        ]

    def _default_headers(self) -> Dict[str, str]:
        headers = super()._default_headers()
        if self.api_key:
            headers["Api-Key"] = self.api_key
        else:
            headers["Authorization"] = f"OAuth {self.oauth_token}"
        headers["X-Market-Integration"] = self.integration_name
        return headers

    def _require(self, value: Optional[str], field: str) -> str:
        if not value:
            raise AdapterConfigurationError(
                f"yandex: {field} is required for this operation", adapter_type=self.type_code, missing_fields=[field]
            )
        return str(value)

    async def get_warehouses(self) -> List[Warehouse]:
        campaign_id = self._require(self.campaign_id, "campaign_id")
        response = await self._call("GET", f"/campaigns/{campaign_id}/warehouses")
        result = response.data.get("result") or response.data
        return [
            Warehouse(id=str(w.get("id")), name=w.get("name") or "", raw=w)
            for w in result.get("warehouses") or []
        ]

    async def get_offer_mappings(self, page: int = 1, page_size: int = OFFER_MAPPINGS_PAGE_SIZE) -> Dict[str, Any]:
        campaign_id = self._require(self.campaign_id, "campaign_id")
        response = await self._call(
            "GET", f"/campaigns/{campaign_id}/offer-mappings", params={"page": page, "pageSize": page_size}
        )
        return {
            "offer_mappings": response.data.get("offerMappings") or [],
            "paging": response.data.get("paging") or {},
        }

    async def sync_products(
        self,
        brands: Optional[List[str]] = None,
        categories: Optional[List[str]] = None,
        update_existing: bool = False,
        warehouse_ids: Optional[List[str]] = None,
        **options,
    ) -> SyncResult:
        products: List[ExternalProductRecord] = []
        page = 1
        while True:
            result = await self.get_offer_mappings(page=page)
            products.extend(self.transform_offer(entry) for entry in result["offer_mappings"])
            paging = result["paging"]
            if not result["offer_mappings"] or page >= int(paging.get("pagesCount") or paging.get("total") or 1):
                break
            page += 1

        if brands:
            wanted = {b.lower() for b in brands}
            products = [p for p in products if p.brand and p.brand.lower() in wanted]

        return SyncResult(success=True, products=products, stats={"total_products": len(products)})

    async def get_stock_levels(self, identifiers: List[str], warehouse_id: Optional[str] = None) -> List[StockLevel]:
        campaign_id = self._require(self.campaign_id, "campaign_id")
        response = await self._call("POST", f"/campaigns/{campaign_id}/offers/stocks", json={"offerIds": identifiers})
        result = response.data.get("result") or {}

        levels: Dict[str, StockLevel] = {}
        for warehouse in result.get("warehouses") or []:
            if warehouse_id and str(warehouse.get("warehouseId")) != str(warehouse_id):
                continue
            for offer in warehouse.get("offers") or []:
                available = sum(
                    parse_quantity(stock.get("count"))
                    for stock in offer.get("stocks") or []
                    if stock.get("type") == "AVAILABLE"
                )
                offer_id = str(offer.get("offerId"))
                if offer_id in levels:
                    levels[offer_id].available += available
                else:
                    levels[offer_id] = StockLevel(product_id=offer_id, available=available)
        return [levels.get(str(i), StockLevel(product_id=str(i), available=0)) for i in identifiers]

    async def update_prices(self, updates: List[Dict[str, Any]]) -> Dict[str, Any]:
        business_id = self._require(self.business_id, "business_id")
        offers = []
        for update in updates:
            price = {"value": float(update["price"]), "currencyId": update.get("currency_id") or "RUR"}
            if update.get("old_price"):
                price["discountBase"] = float(update["old_price"])
            offers.append({"offerId": str(update["product_id"]), "price": price})

        response = await self._call("POST", f"/businesses/{business_id}/offer-prices/updates", json={"offers": offers})
        return response.data

    async def update_stocks(self, updates: List[Dict[str, Any]], warehouse_id: Optional[str] = None) -> Dict[str, Any]:
        campaign_id = self._require(self.campaign_id, "campaign_id")
        warehouse_id = self._require(warehouse_id, "warehouse_id")
        updated_at = datetime.now(timezone.utc).isoformat()
        payload = {
            "skus": [
                {
                    "sku": str(update["product_id"]),
                    "items": [{"type": "FIT", "count": int(update["quantity"]), "updatedAt": updated_at}],
                }
                for update in updates
            ]
        }
        response = await self._call("PUT", f"/campaigns/{campaign_id}/warehouses/{warehouse_id}/stocks", json=payload)
        return response.data

    async def test_connection(self) -> ConnectionTestResult:
        start_time = time.time()
        details: Dict[str, Any] = {}
        try:
            if self.campaign_id:
                response = await self._call("GET", f"/campaigns/{self.campaign_id}")
                details["campaign"] = response.data.get("campaign")
            if self.business_id:
                response = await self._call("GET", f"/businesses/{self.business_id}/campaigns")
                details["campaigns_count"] = len(response.data.get("campaigns") or [])
        except AdapterError as e:
            return ConnectionTestResult(success=False, message=e.message)

        if not details:
            return ConnectionTestResult(success=False, message="campaign_id or business_id is required")

        return ConnectionTestResult(
            success=True,
            message="Connection successful",
            response_time_ms=int((time.time() - start_time) * 1000),
            details=details,
        )

    @staticmethod
    def transform_offer(entry: Dict[str, Any]) -> ExternalProductRecord:
        offer = entry.get("offer") or {}
        mapping = entry.get("mapping") or {}
        barcodes = offer.get("barcodes") or []
        price = (offer.get("basicPrice") or {}).get("value")
        return ExternalProductRecord(
            external_id=str(mapping["marketSku"]) if mapping.get("marketSku") else None,
            sku=offer.get("offerId") or offer.get("shopSku"),
            name=offer.get("name") or "",
            description=offer.get("description") or "",
            brand=offer.get("vendor"),
            barcode=barcodes[0] if barcodes else None,
            category=offer.get("category"),
            images=list(offer.get("pictures") or []),
            price=parse_price(price),
            raw=entry,
        )
