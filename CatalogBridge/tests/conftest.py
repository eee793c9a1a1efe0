"""
Test configuration - isolated in-memory database, a deterministic cipher and
seeded tenants. No test touches the application database or a vendor API.
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

import CatalogBridge.models.models  # noqa: F401  registers every table
from CatalogBridge.adapters import ExternalProductRecord, PriceQuote, StockLevel, SyncResult
from CatalogBridge.database.db import configure_sqlite_engine
from CatalogBridge.models import BrandModel, MarketplaceModel, SupplierModel
from CatalogBridge.services.security.credential_cipher import CredentialCipher

TEST_MASTER_KEY = "unit-test-master-key"
COMPANY_ID = "company-1"
OTHER_COMPANY_ID = "company-2"


@pytest.fixture(scope="function")
def memory_engine():
    """In-memory SQLite shared by every session of one test"""
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_engine(engine)
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def cipher():
    return CredentialCipher(TEST_MASTER_KEY)


@pytest.fixture
def seeded(memory_engine, cipher) -> Dict[str, str]:
    """Two tenants, an RS24 supplier and a marketplace for the first, brands for both"""
    with Session(memory_engine) as session:
        acme = BrandModel(company_id=COMPANY_ID, name="Acme")
        globex = BrandModel(company_id=COMPANY_ID, name="Globex")
        foreign_brand = BrandModel(company_id=OTHER_COMPANY_ID, name="Acme")
        supplier = SupplierModel(
            company_id=COMPANY_ID,
            name="Russian Svet",
            code="RS",
            api_type="rs24",
            api_config=cipher.encrypt({"login": "rs-user", "password": "rs-secret"}),
            default_warehouse_id="WH1",
        )
        foreign_supplier = SupplierModel(
            company_id=OTHER_COMPANY_ID,
            name="Russian Svet",
            api_type="rs24",
            api_config=cipher.encrypt({"login": "other", "password": "other"}),
        )
        marketplace = MarketplaceModel(
            company_id=COMPANY_ID,
            name="Ozon",
            api_type="ozon",
            api_config=cipher.encrypt({"client_id": "123", "api_key": "ozon-key"}),
        )
        session.add_all([acme, globex, foreign_brand, supplier, foreign_supplier, marketplace])
        session.commit()

        return {
            "company_id": COMPANY_ID,
            "other_company_id": OTHER_COMPANY_ID,
            "acme_id": acme.id,
            "globex_id": globex.id,
            "foreign_brand_id": foreign_brand.id,
            "supplier_id": supplier.id,
            "foreign_supplier_id": foreign_supplier.id,
            "marketplace_id": marketplace.id,
        }


class FakeSupplierAdapter:
    """Stands in for a vendor adapter; records calls and replays canned data"""

    def __init__(self, products: Optional[List[ExternalProductRecord]] = None,
                 quotes: Optional[List[PriceQuote]] = None,
                 stock_levels: Optional[Dict[str, int]] = None,
                 error: Optional[Exception] = None):
        self.products = products or []
        self.quotes = quotes or []
        self.stock_levels = stock_levels or {}
        self.error = error
        self.sync_calls: List[Dict[str, Any]] = []
        self.stock_calls: List[Dict[str, Any]] = []
        self.price_calls: List[List[str]] = []
        self.closed = False

    async def sync_products(self, brands=None, categories=None, update_existing=False, warehouse_ids=None, **options):
        self.sync_calls.append({"brands": brands, "update_existing": update_existing})
        if self.error:
            raise self.error
        return SyncResult(success=True, products=list(self.products))

    async def get_prices(self, identifiers):
        self.price_calls.append(list(identifiers))
        if self.error:
            raise self.error
        return list(self.quotes)

    async def get_stock_levels(self, identifiers, warehouse_id=None):
        self.stock_calls.append({"identifiers": list(identifiers), "warehouse_id": warehouse_id})
        if self.error:
            raise self.error
        return [
            StockLevel(product_id=code, available=self.stock_levels[code])
            for code in identifiers
            if code in self.stock_levels
        ]

    async def close(self):
        self.closed = True


class RecordingFactory:
    """Adapter factory that hands out one fake adapter and remembers its config"""

    def __init__(self, adapter: FakeSupplierAdapter):
        self.adapter = adapter
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, api_type, config):
        self.calls.append({"api_type": api_type, "config": config})
        return self.adapter


@pytest.fixture
def fake_adapter():
    return FakeSupplierAdapter()


@pytest.fixture
def adapter_factory(fake_adapter):
    return RecordingFactory(fake_adapter)


def make_record(external_id: Optional[str], sku: Optional[str], name: str, brand: Optional[str] = "Acme",
                price: Optional[str] = None, images: Optional[List[str]] = None) -> ExternalProductRecord:
    return ExternalProductRecord(
        external_id=external_id,
        sku=sku,
        name=name,
        brand=brand,
        price=Decimal(price) if price is not None else None,
        images=images or [],
    )
