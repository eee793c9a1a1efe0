"""
Tests for the RS24 supplier adapter against mocked HTTP responses
"""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from CatalogBridge.adapters import create_adapter, rs24
from CatalogBridge.adapters.http_client import AdapterHTTPClient, HTTPResponse
from CatalogBridge.exceptions import AdapterConnectionError


def _response(data=None, status=200, headers=None):
    return HTTPResponse(
        status=status,
        data=data if data is not None else {},
        headers=headers or {},
        url="https://cdis.russvet.ru/rs/test",
        duration_ms=1,
        success=200 <= status < 300,
    )


def _item(code, vendor_code, brand, name="Item"):
    return {"CODE": code, "VENDOR_CODE": vendor_code, "BRAND": brand, "NAME": name, "UOM": "pcs"}


@pytest.fixture
def adapter():
    return create_adapter("rs24", {"login": "user", "password": "secret", "warehouse_id": "WH1"})


def _mock_requests(*responses):
    return patch.object(AdapterHTTPClient, "request", new=AsyncMock(side_effect=list(responses)))


class TestAuthentication:
    def test_username_is_accepted_as_login(self):
        adapter = create_adapter("rs24", {"username": "user", "password": "secret"})
        assert adapter.login == "user"
        assert adapter.timeout == 60

    @pytest.mark.asyncio
    async def test_session_is_reestablished_once_on_401(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 12, "NAME": "Main"}]}
        with _mock_requests(_response(status=401), _response(stocks)) as request:
            warehouses = await adapter.get_warehouses()

        assert request.await_count == 2
        assert [(w.id, w.name) for w in warehouses] == [("12", "Main")]

    @pytest.mark.asyncio
    async def test_second_401_raises_authentication_error(self, adapter):
        with _mock_requests(_response(status=401), _response(status=401)):
            with pytest.raises(AdapterConnectionError) as exc_info:
                await adapter.get_warehouses()

        assert exc_info.value.status == 401
        assert "Check login and password" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_403_is_reported_as_rate_limit(self, adapter):
        with _mock_requests(_response(status=403)) as request:
            with pytest.raises(AdapterConnectionError) as exc_info:
                await adapter.get_warehouses()

        assert request.await_count == 1
        assert exc_info.value.status == 403
        assert "rate limit" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_other_errors_carry_vendor_message(self, adapter):
        with _mock_requests(_response({"message": "Unknown warehouse"}, status=404)):
            with pytest.raises(AdapterConnectionError) as exc_info:
                await adapter.get_products(warehouse_id="404")

        assert "Unknown warehouse" in exc_info.value.message
        assert exc_info.value.status == 404


class TestCatalog:
    @pytest.mark.asyncio
    async def test_get_products_filters_brands_and_pages(self, adapter):
        data = {
            "items": [_item(1, "A-1", "IEK Group"), _item(2, "B-2", "Schneider")],
            "meta": {"last_page": 3, "rows_count": 2500},
        }
        with _mock_requests(_response(data)) as request:
            page = await adapter.get_products(page=1, rows=5000, brands=["iek"])

        method, path = request.await_args.args
        assert (method, path) == ("GET", "/position/WH1/all")
        assert request.await_args.kwargs["params"] == {"page": 1, "rows": 1000}
        assert [p.sku for p in page.products] == ["A-1"]
        assert page.total_pages == 3
        assert page.total_items == 2500
        assert page.has_next_page is True

    @pytest.mark.asyncio
    async def test_missing_warehouse_is_rejected(self):
        adapter = create_adapter("rs24", {"login": "user", "password": "secret"})
        with pytest.raises(ValueError, match="warehouse_id is required"):
            await adapter.get_products()

    def test_transform_product(self):
        record = rs24.RS24Adapter.transform_product(_item(100, "X1", "Acme", name="Widget"))

        assert record.external_id == "100"
        assert record.sku == "X1"
        assert record.name == "Widget"
        assert record.brand == "Acme"
        assert record.attributes == {"unit": "pcs"}

    def test_transform_specs(self):
        data = {
            "INFO": [{"VENDOR_CODE": "X1", "DESCRIPTION": "Widget", "BRAND": "Acme", "SERIES": "W"}],
            "SPECS": [{"NAME": "Voltage", "VALUE": "220", "UOM": "V"}],
            "BARCODE": [{"EAN": "4600000000000"}],
            "IMG": [{"URL": "https://img.example/1.jpg"}, {"URL": ""}],
        }
        record = rs24.RS24Adapter.transform_specs("100", data)

        assert record.attributes["Voltage"] == "220 V"
        assert record.attributes["series"] == "W"
        assert record.barcode == "4600000000000"
        assert record.images == ["https://img.example/1.jpg"]


class TestPricesAndStock:
    @pytest.mark.asyncio
    async def test_prices_are_requested_in_batches(self, adapter):
        codes = [str(n) for n in range(1, 4)]
        first = {"items": [
            {"RSCode": 1, "Price": {"Personal": "10,50", "Retail": "12", "MRC": "15"}},
            {"RSCode": 2, "Price": {"Personal": None, "Retail": "20"}},
        ]}
        second = {"items": [{"RSCode": 3, "Price": {"Personal": "0", "Retail": "30"}}]}

        with patch.object(rs24, "PRICE_BATCH_SIZE", 2), _mock_requests(_response(first), _response(second)) as request:
            quotes = await adapter.get_prices(codes)

        assert request.await_count == 2
        assert request.await_args_list[0].kwargs["json"] == {"items": [1, 2]}
        assert request.await_args_list[1].kwargs["json"] == {"items": [3]}
        assert [(q.product_id, q.price) for q in quotes] == [
            ("1", Decimal("10.50")),
            ("2", Decimal("20")),
            ("3", Decimal("30")),
        ]
        assert quotes[0].mrc_price == Decimal("15")

    @pytest.mark.asyncio
    async def test_stock_levels_per_code(self, adapter):
        with _mock_requests(_response({"Residue": "7", "UOM": "pcs"}), _response({})) as request:
            levels = await adapter.get_stock_levels(["100", "200"])

        assert [call.args[1] for call in request.await_args_list] == ["/residue/WH1/100", "/residue/WH1/200"]
        assert [(s.product_id, s.available) for s in levels] == [("100", 7), ("200", 0)]

    @pytest.mark.asyncio
    async def test_all_stocks_reads_pagination_headers(self, adapter):
        data = {"residues": [{"CODE": 5, "Residue": 3}]}
        headers = {"x-pagination-page-count": "4", "x-pagination-total-count": "350"}
        with _mock_requests(_response(data, headers=headers)) as request:
            page = await adapter.get_all_stocks(rows=500)

        assert request.await_args.kwargs["params"]["rows"] == rs24.MAX_RESIDUE_ROWS_WITH_PARTNER
        assert page.total_pages == 4
        assert page.total_items == 350
        assert page.has_next_page is True


class TestSyncProducts:
    @pytest.mark.asyncio
    async def test_sync_collects_deduplicates_and_prices(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}, {"ORGANIZATION_ID": 2, "NAME": "B"}]}
        wh1 = {"items": [_item(10, "S-10", "Acme")], "meta": {"last_page": 1}}
        wh2 = {"items": [_item(10, "S-10", "Acme"), _item(11, "S-11", "Acme")], "meta": {"last_page": 1}}
        prices = {"items": [{"RSCode": 10, "Price": {"Personal": "5"}}, {"RSCode": 11, "Price": {"Retail": "6"}}]}

        with _mock_requests(_response(stocks), _response(wh1), _response(wh2), _response(prices)):
            result = await adapter.sync_products(brands=["Acme"])

        assert result.success is True
        assert [(p.external_id, p.price, p.source_warehouse_id) for p in result.products] == [
            ("10", Decimal("5"), "1"),
            ("11", Decimal("6"), "2"),
        ]
        assert result.stats["processed_warehouses"] == 2
        assert result.stats["total_products"] == 2

    @pytest.mark.asyncio
    async def test_failed_warehouse_is_recorded_in_stats(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}, {"ORGANIZATION_ID": 2, "NAME": "B"}]}
        wh2 = {"items": [_item(11, "S-11", "Acme")], "meta": {"last_page": 1}}

        with _mock_requests(
            _response(stocks), _response(status=500), _response(wh2), _response({"items": []})
        ):
            result = await adapter.sync_products(brands=["Acme"])

        assert [p.external_id for p in result.products] == ["11"]
        assert result.stats["processed_warehouses"] == 1
        assert len(result.stats["errors"]) == 1

    @pytest.mark.asyncio
    async def test_sync_raises_when_every_warehouse_fails(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}]}
        with _mock_requests(_response(stocks), _response(status=500)):
            with pytest.raises(AdapterConnectionError):
                await adapter.sync_products(brands=["Acme"])

    @pytest.mark.asyncio
    async def test_sync_restricted_to_requested_warehouses(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}, {"ORGANIZATION_ID": 2, "NAME": "B"}]}
        with _mock_requests(_response(stocks), _response({"items": [], "meta": {}})) as request:
            result = await adapter.sync_products(warehouse_ids=["2"])

        assert request.await_args_list[1].args[1] == "/position/2/all"
        assert result.products == []


class TestPointLookups:
    @pytest.mark.asyncio
    async def test_search_by_vendor_code_returns_every_variant(self, adapter):
        data = [_item(1, "A-1", "Acme", name="Variant 1"), _item(2, "A-1", "Acme", name="Variant 2")]
        with _mock_requests(_response({"items": data})) as request:
            records = await adapter.search_products("A-1")

        assert request.await_args.args == ("POST", "/finditem")
        assert request.await_args.kwargs["json"] == {"vendorCode": "A-1"}
        assert [r.external_id for r in records] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_product_details_from_specs(self, adapter):
        data = {"INFO": [{"VENDOR_CODE": "X1", "DESCRIPTION": "Widget"}]}
        with _mock_requests(_response(data), _response({})) as request:
            record = await adapter.get_product_details("100")
            missing = await adapter.get_product_details("200")

        assert request.await_args_list[0].args == ("GET", "/specs/100")
        assert (record.external_id, record.sku, record.name) == ("100", "X1", "Widget")
        assert missing is None

    @pytest.mark.asyncio
    async def test_partner_warehouse_stock(self, adapter):
        data = {
            "partnerWarehouseStock": [
                {"RSCode": 7, "partnerQuantity": "12", "partnerUOM": "pcs", "estimatedArrivalDate": "2024-05-01"}
            ],
            "meta": {"lastPage": 1, "rowCount": 1},
        }
        with _mock_requests(_response(data)) as request:
            page = await adapter.get_all_partner_warehouse_stock(rows=10_000)

        assert request.await_args.args == ("GET", "/partnerwhstock/all/WH1")
        assert request.await_args.kwargs["params"]["rows"] == rs24.MAX_PARTNER_STOCK_ROWS
        [stock] = page.stocks
        assert (stock.product_id, stock.available, stock.partner_available) == ("7", 12, 12)
        assert stock.estimated_arrival == "2024-05-01"
        assert page.has_next_page is False


class TestSyncEnrichment:
    @pytest.mark.asyncio
    async def test_specs_and_stock_are_attached(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}]}
        position = {"items": [_item(10, "S-10", "Acme"), _item(11, "S-11", "Acme")], "meta": {"last_page": 1}}
        specs = {
            "INFO": [{"VENDOR_CODE": "S-10", "DESCRIPTION": "Breaker", "ETIM_CLASS": "EC000042",
                      "ETIM_CLASS_NAME": "Circuit breaker"}],
            "CERTIFICATE": [{"URL": "https://docs.example/c.pdf", "CERT_NUM": "RU-1"}],
            "IMG": [{"URL": "https://img.example/10.jpg"}],
        }

        with _mock_requests(
            _response(stocks),
            _response(position),
            _response(specs),
            _response(status=500),
            _response({"Residue": "7"}),
            _response({"Residue": 0}),
        ) as request:
            result = await adapter.sync_products(
                brands=["Acme"], with_prices=False, with_specs=True, with_stocks=True
            )

        paths = [call.args[1] for call in request.await_args_list]
        assert paths[2:] == ["/specs/10", "/specs/11", "/residue/1/10", "/residue/1/11"]

        first, second = result.products
        assert first.attributes["etim_class"] == "EC000042"
        assert first.attributes["etim_class_name"] == "Circuit breaker"
        assert first.attributes["certificates"] == [{"url": "https://docs.example/c.pdf", "number": "RU-1"}]
        assert first.attributes["unit"] == "pcs"
        assert first.images == ["https://img.example/10.jpg"]
        assert "etim_class" not in second.attributes
        assert (first.stock, second.stock) == (7, 0)
        assert len(result.stats["errors"]) == 1
        assert result.stats["errors"][0].startswith("Specs 11")

    @pytest.mark.asyncio
    async def test_no_enrichment_requests_by_default(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}]}
        position = {"items": [_item(10, "S-10", "Acme")], "meta": {"last_page": 1}}

        with _mock_requests(_response(stocks), _response(position)) as request:
            result = await adapter.sync_products(with_prices=False)

        assert request.await_count == 2
        assert result.products[0].stock is None


class TestBrandDiscovery:
    @pytest.mark.asyncio
    async def test_brands_are_collected_across_warehouses(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": n, "NAME": f"W{n}"} for n in range(1, 5)]}
        wh1_page1 = {"items": [_item(1, "A", " Acme "), _item(2, "B", "IEK")], "meta": {"last_page": 3}}
        wh1_page2 = {"items": [_item(3, "C", "Acme"), _item(4, "D", None)], "meta": {"last_page": 3}}
        wh3_page1 = {"items": [_item(5, "E", "Schneider")], "meta": {"last_page": 1}}

        with _mock_requests(
            _response(stocks),
            _response(wh1_page1),
            _response(wh1_page2),
            _response(status=500),
            _response(wh3_page1),
        ) as request:
            brands = await adapter.get_brands(pages=2)

        assert brands == ["Acme", "IEK", "Schneider"]
        assert [call.args[1] for call in request.await_args_list[1:]] == [
            "/position/1/all",
            "/position/1/all",
            "/position/2/all",
            "/position/3/all",
        ]
        assert request.await_args_list[2].kwargs["params"]["page"] == 2

    @pytest.mark.asyncio
    async def test_brands_restricted_to_requested_warehouses(self, adapter):
        stocks = {"Stocks": [{"ORGANIZATION_ID": 1, "NAME": "A"}, {"ORGANIZATION_ID": 9, "NAME": "B"}]}
        page = {"items": [_item(1, "A", "Legrand")], "meta": {"last_page": 1}}

        with _mock_requests(_response(stocks), _response(page)) as request:
            brands = await adapter.get_brands(warehouse_ids=[9])

        assert request.await_args_list[1].args == ("GET", "/position/9/all")
        assert brands == ["Legrand"]
