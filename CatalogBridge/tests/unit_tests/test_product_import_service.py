"""
Tests for supplier product import and price / stock refresh
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from conftest import make_record
from CatalogBridge.adapters import PriceQuote
from CatalogBridge.exceptions import (
    AdapterConnectionError,
    BrandNotFoundError,
    DecryptionError,
    SupplierNotFoundError,
    ValidationError,
)
from CatalogBridge.models import (
    PriceModel,
    PriceType,
    ProductImageModel,
    ProductModel,
    SupplierModel,
    WarehouseProductLinkModel,
)
from CatalogBridge.repositories.product_repository import ProductRepository
from CatalogBridge.services.catalog import product_import_service
from CatalogBridge.services.catalog.product_import_service import ImportOptions, ProductImportService
from CatalogBridge.services.security.credential_cipher import CredentialCipher


@pytest.fixture
def service(memory_engine, cipher, adapter_factory):
    return ProductImportService(cipher, adapter_factory=adapter_factory, engine_override=memory_engine)


def _products(engine, company_id):
    with Session(engine) as session:
        return session.exec(
            select(ProductModel).where(ProductModel.company_id == company_id).order_by(ProductModel.name)
        ).all()


def _images(engine, product_id):
    with Session(engine) as session:
        return session.exec(
            select(ProductImageModel)
            .where(ProductImageModel.product_id == product_id)
            .order_by(ProductImageModel.sort_order)
        ).all()


def _prices(engine, product_id):
    with Session(engine) as session:
        return session.exec(select(PriceModel).where(PriceModel.product_id == product_id)).all()


def _update_supplier(engine, supplier_id, **values):
    with Session(engine) as session:
        supplier = session.get(SupplierModel, supplier_id)
        for key, value in values.items():
            setattr(supplier, key, value)
        session.add(supplier)
        session.commit()


class TestImportProductsByBrands:
    @pytest.mark.asyncio
    async def test_new_product_is_imported_with_images_and_price(
        self, service, seeded, fake_adapter, adapter_factory, memory_engine
    ):
        fake_adapter.products = [
            make_record("E1", "X1", "Widget", price="100", images=["https://img/1.jpg", "https://img/2.jpg"])
        ]

        result = await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

        assert result.to_dict() == {"imported": 1, "updated": 0, "skipped": 0, "errors": []}
        assert fake_adapter.sync_calls == [{"brands": ["Acme"], "update_existing": True}]
        assert fake_adapter.closed is True

        call = adapter_factory.calls[0]
        assert call["api_type"] == "rs24"
        assert call["config"]["login"] == "rs-user"
        assert call["config"]["password"] == "rs-secret"
        assert call["config"]["warehouse_id"] == "WH1"
        assert "timeout" in call["config"]

        [product] = _products(memory_engine, seeded["company_id"])
        assert (product.sku, product.external_id, product.name) == ("X1", "E1", "Widget")
        assert product.brand_id == seeded["acme_id"]
        assert product.main_supplier_id == seeded["supplier_id"]
        assert product.source_type == "supplier"

        images = _images(memory_engine, product.id)
        assert [(i.image_url, i.is_main, i.alt_text) for i in images] == [
            ("https://img/1.jpg", True, "Widget"),
            ("https://img/2.jpg", False, "Widget"),
        ]

        [price] = _prices(memory_engine, product.id)
        assert price.price_type == PriceType.SUPPLIER
        assert price.value == Decimal("100")

    @pytest.mark.asyncio
    async def test_reimport_updates_the_same_row(self, service, seeded, fake_adapter, memory_engine):
        company_id, supplier_id = seeded["company_id"], seeded["supplier_id"]
        fake_adapter.products = [make_record("E1", "X1", "Widget", price="100")]
        await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        fake_adapter.products = [make_record("E1", "X1", "Widget Pro", price="120")]
        result = await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        assert (result.imported, result.updated) == (0, 1)
        [product] = _products(memory_engine, company_id)
        assert product.name == "Widget Pro"
        [price] = _prices(memory_engine, product.id)
        assert price.value == Decimal("120")

    @pytest.mark.asyncio
    async def test_existing_products_are_skipped_without_update_existing(
        self, service, seeded, fake_adapter, memory_engine
    ):
        company_id, supplier_id = seeded["company_id"], seeded["supplier_id"]
        fake_adapter.products = [make_record("E1", "X1", "Widget", price="100")]
        await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        fake_adapter.products = [make_record("E1", "X1", "Renamed", price="999")]
        result = await service.import_products_by_brands(
            company_id, supplier_id, [seeded["acme_id"]], ImportOptions(update_existing=False)
        )

        assert (result.skipped, result.total_processed) == (1, 1)
        [product] = _products(memory_engine, company_id)
        assert product.name == "Widget"
        assert _prices(memory_engine, product.id)[0].value == Decimal("100")

    @pytest.mark.asyncio
    async def test_one_failing_record_does_not_abort_the_batch(self, service, seeded, fake_adapter, memory_engine):
        fake_adapter.products = [
            make_record("E1", "X1", "Widget", images=["https://img/1.jpg"]),
            make_record("E2", "X2", "Broken", images=["https://img/2.jpg"]),
            make_record("E3", "X3", "Gadget", images=["https://img/3.jpg"]),
        ]
        add_images = service.product_repo.add_images

        def flaky_add_images(session, product_id, urls, alt_text=None):
            if alt_text == "Broken":
                raise RuntimeError("image store unavailable")
            return add_images(session, product_id, urls, alt_text=alt_text)

        with patch.object(service.product_repo, "add_images", side_effect=flaky_add_images):
            result = await service.import_products_by_brands(
                seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]]
            )

        assert result.imported == 2
        assert result.errors == [{"identifier": "X2", "message": "image store unavailable"}]
        assert [p.sku for p in _products(memory_engine, seeded["company_id"])] == ["X3", "X1"]

    @pytest.mark.asyncio
    async def test_sku_is_the_merge_key_without_external_id(self, service, seeded, fake_adapter, memory_engine):
        company_id, supplier_id = seeded["company_id"], seeded["supplier_id"]
        fake_adapter.products = [make_record(None, "S1", "Plain")]

        first = await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])
        second = await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        assert (first.imported, second.updated) == (1, 1)
        assert len(_products(memory_engine, company_id)) == 1

    @pytest.mark.asyncio
    async def test_record_without_any_key_is_reported(self, service, seeded, fake_adapter, memory_engine):
        fake_adapter.products = [make_record(None, None, "Nameless"), make_record("E1", "X1", "Widget")]

        result = await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

        assert result.imported == 1
        assert result.errors == [{"identifier": None, "message": "Product has neither an external id nor a SKU"}]

    @pytest.mark.asyncio
    async def test_unmatched_brand_leaves_product_without_brand(self, service, seeded, fake_adapter, memory_engine):
        fake_adapter.products = [make_record("E1", "X1", "Widget", brand="Initech")]

        await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [])

        [product] = _products(memory_engine, seeded["company_id"])
        assert product.brand_id is None
        assert fake_adapter.sync_calls[0]["brands"] is None

    @pytest.mark.asyncio
    async def test_images_are_replaced_on_update(self, service, seeded, fake_adapter, memory_engine):
        company_id, supplier_id = seeded["company_id"], seeded["supplier_id"]
        fake_adapter.products = [make_record("E1", "X1", "Widget", images=["https://img/a.jpg", "https://img/b.jpg"])]
        await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        fake_adapter.products = [make_record("E1", "X1", "Widget", images=["https://img/c.jpg"])]
        await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        [product] = _products(memory_engine, company_id)
        assert [(i.image_url, i.is_main) for i in _images(memory_engine, product.id)] == [("https://img/c.jpg", True)]

        fake_adapter.products = [make_record("E1", "X1", "Widget", images=["https://img/d.jpg"])]
        await service.import_products_by_brands(
            company_id, supplier_id, [seeded["acme_id"]], ImportOptions(replace_images=False)
        )

        assert [i.image_url for i in _images(memory_engine, product.id)] == ["https://img/c.jpg"]

    @pytest.mark.asyncio
    async def test_supplier_of_other_tenant_is_not_found(self, service, seeded, adapter_factory):
        with pytest.raises(SupplierNotFoundError):
            await service.import_products_by_brands(
                seeded["company_id"], seeded["foreign_supplier_id"], [seeded["acme_id"]]
            )

        assert adapter_factory.calls == []

    @pytest.mark.asyncio
    async def test_inactive_supplier_is_not_found(self, service, seeded, memory_engine):
        _update_supplier(memory_engine, seeded["supplier_id"], is_active=False)

        with pytest.raises(SupplierNotFoundError):
            await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

    @pytest.mark.asyncio
    async def test_unknown_brand_id_is_rejected(self, service, seeded, adapter_factory):
        with pytest.raises(BrandNotFoundError):
            await service.import_products_by_brands(
                seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"], seeded["foreign_brand_id"]]
            )

        assert adapter_factory.calls == []

    @pytest.mark.asyncio
    async def test_adapter_failure_propagates_and_closes_adapter(self, service, seeded, fake_adapter, memory_engine):
        fake_adapter.error = AdapterConnectionError("RS24 unavailable", adapter_type="rs24", status=503)

        with pytest.raises(AdapterConnectionError):
            await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

        assert fake_adapter.closed is True
        assert _products(memory_engine, seeded["company_id"]) == []


class TestSupplierConfig:
    @pytest.mark.asyncio
    async def test_plaintext_json_config_is_accepted(self, service, seeded, adapter_factory, memory_engine):
        _update_supplier(memory_engine, seeded["supplier_id"], api_config='{"login": "plain", "password": "p"}')

        await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

        config = adapter_factory.calls[0]["config"]
        assert config["login"] == "plain"
        assert "timeout" in config

    @pytest.mark.asyncio
    async def test_config_encrypted_with_another_key_fails(self, service, seeded, adapter_factory, memory_engine):
        foreign = CredentialCipher("some-other-master-key").encrypt({"login": "x", "password": "y"})
        _update_supplier(memory_engine, seeded["supplier_id"], api_config=foreign)

        with pytest.raises(DecryptionError):
            await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

        assert adapter_factory.calls == []


class TestProductUniqueness:
    def test_repeated_upserts_keep_one_row(self, seeded, memory_engine):
        repo = ProductRepository()
        results = []
        for name in ("First", "Second"):
            with Session(memory_engine) as session:
                results.append(repo.upsert_by_external_id(session, seeded["company_id"], "E1", {"name": name}))
                session.commit()

        assert results[0][0] == results[1][0]
        assert [created for _, created in results] == [True, False]
        [product] = _products(memory_engine, seeded["company_id"])
        assert product.name == "Second"

    def test_same_external_id_in_other_tenant_is_separate(self, seeded, memory_engine):
        repo = ProductRepository()
        with Session(memory_engine) as session:
            own, _ = repo.upsert_by_external_id(session, seeded["company_id"], "E1", {"name": "Own"})
            other, created = repo.upsert_by_external_id(session, seeded["other_company_id"], "E1", {"name": "Other"})
            session.commit()

        assert own != other
        assert created is True

    @pytest.mark.asyncio
    async def test_import_racing_a_stored_row_merges_into_it(self, service, seeded, fake_adapter, memory_engine):
        company_id, supplier_id = seeded["company_id"], seeded["supplier_id"]
        images = ["https://img/1.jpg", "https://img/2.jpg"]
        fake_adapter.products = [make_record("E1", "X1", "Widget", price="100", images=images)]
        first = await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        # A lookup that misses the row another importer already committed
        fake_adapter.products = [make_record("E1", "X1", "Widget", price="110", images=images)]
        with patch.object(service.product_repo, "find_by_external_id", return_value=None):
            second = await service.import_products_by_brands(company_id, supplier_id, [seeded["acme_id"]])

        assert (first.imported, first.updated) == (1, 0)
        assert (second.imported, second.updated, second.errors) == (0, 1, [])

        [product] = _products(memory_engine, company_id)
        stored = _images(memory_engine, product.id)
        assert [i.image_url for i in stored] == images
        assert [i.is_main for i in stored] == [True, False]
        [price] = _prices(memory_engine, product.id)
        assert price.value == Decimal("110")

    def test_duplicate_insert_violates_unique_constraint(self, seeded, memory_engine):
        with Session(memory_engine) as session:
            session.add(ProductModel(company_id=seeded["company_id"], name="A", external_id="E1"))
            session.add(ProductModel(company_id=seeded["company_id"], name="B", external_id="E1"))
            with pytest.raises(IntegrityError):
                session.commit()


class TestRefresh:
    async def _import(self, service, seeded, fake_adapter, *records):
        fake_adapter.products = list(records)
        await service.import_products_by_brands(seeded["company_id"], seeded["supplier_id"], [seeded["acme_id"]])

    @pytest.mark.asyncio
    async def test_price_refresh_counts_updated_rows(self, service, seeded, fake_adapter, memory_engine):
        await self._import(
            service, seeded, fake_adapter,
            make_record("E1", "X1", "Widget", price="100"),
            make_record("E2", "X2", "Gadget", price="50"),
        )
        fake_adapter.quotes = [
            PriceQuote(product_id="E1", price=Decimal("110")),
            PriceQuote(product_id="E2", price=None),
            PriceQuote(product_id="E9", price=Decimal("1")),
        ]

        result = await service.sync_prices_from_supplier(seeded["company_id"], seeded["supplier_id"])

        assert result.to_dict() == {"synced": 1, "requested": 2, "skipped": 1}
        assert fake_adapter.price_calls == [["E1", "E2"]]
        products = {p.external_id: p for p in _products(memory_engine, seeded["company_id"])}
        with Session(memory_engine) as session:
            assert ProductRepository().get_price(session, products["E1"].id).value == Decimal("110")
        assert _prices(memory_engine, products["E2"].id)[0].value == Decimal("50")

    @pytest.mark.asyncio
    async def test_price_refresh_without_linked_products(self, service, seeded, fake_adapter):
        result = await service.sync_prices_from_supplier(seeded["company_id"], seeded["supplier_id"])

        assert result.requested == 0
        assert fake_adapter.price_calls == []

    @pytest.mark.asyncio
    async def test_stock_refresh_in_batches(self, service, seeded, fake_adapter, memory_engine):
        await self._import(
            service, seeded, fake_adapter,
            make_record("E1", "X1", "Widget"),
            make_record("E2", "X2", "Gadget"),
            make_record("E3", "X3", "Gizmo"),
        )
        products = {p.external_id: p for p in _products(memory_engine, seeded["company_id"])}
        with Session(memory_engine) as session:
            for external_id in ("E1", "E2"):
                session.add(WarehouseProductLinkModel(product_id=products[external_id].id, warehouse_id="WH1"))
            session.commit()
        fake_adapter.stock_levels = {"E1": 5, "E2": 7, "E3": 9}

        with patch.object(product_import_service, "STOCK_BATCH_SIZE", 2):
            result = await service.sync_stocks_from_supplier(seeded["company_id"], seeded["supplier_id"])

        assert fake_adapter.stock_calls == [
            {"identifiers": ["E1", "E2"], "warehouse_id": "WH1"},
            {"identifiers": ["E3"], "warehouse_id": "WH1"},
        ]
        assert (result.synced, result.requested) == (2, 3)
        with Session(memory_engine) as session:
            repo = ProductRepository()
            assert repo.get_stock_link(session, products["E1"].id, "WH1").quantity == 5
            assert repo.get_stock_link(session, products["E2"].id, "WH1").available_quantity == 7
            assert repo.get_stock_link(session, products["E3"].id, "WH1") is None

    @pytest.mark.asyncio
    async def test_stock_refresh_needs_a_warehouse(self, service, seeded, fake_adapter, memory_engine):
        _update_supplier(memory_engine, seeded["supplier_id"], default_warehouse_id=None)

        with pytest.raises(ValidationError) as exc_info:
            await service.sync_stocks_from_supplier(seeded["company_id"], seeded["supplier_id"])

        assert exc_info.value.missing_fields == ["warehouse_id"]
        assert fake_adapter.stock_calls == []
