"""
Product Import Service

Reconciles supplier product feeds into the tenant catalog:

1. load the supplier and decrypt its API configuration
2. pull products for the requested brands through the supplier adapter
3. merge every record into products, images and supplier prices, each record
   in its own savepoint so one bad record never aborts the batch

Price and stock refreshes reuse the same supplier link (main_supplier_id plus
external_id) and report how many rows were actually changed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlmodel import Session

from CatalogBridge.adapters import ExternalProductRecord, create_adapter
from CatalogBridge.adapters.base import chunked
from CatalogBridge.exceptions import BrandNotFoundError, SupplierNotFoundError, ValidationError
from CatalogBridge.models.integration_models import SupplierModel
from CatalogBridge.models.catalog_models import ProductModel
from CatalogBridge.repositories.brand_mapping_repository import BrandRepository
from CatalogBridge.repositories.product_repository import ProductRepository
from CatalogBridge.repositories.supplier_repository import SupplierRepository
from CatalogBridge.services.base_service import BaseService
from CatalogBridge.services.catalog.brand_mapping_service import BrandMappingService
from CatalogBridge.services.security.credential_cipher import CredentialCipher
from CatalogBridge.services.system.integration_credential_service import build_adapter_config

logger = logging.getLogger(__name__)

STOCK_BATCH_SIZE = 50


@dataclass
class ImportOptions:
    update_existing: bool = True
    replace_images: bool = True
    categories: Optional[List[str]] = None
    warehouse_ids: Optional[List[str]] = None


@dataclass
class ImportBatchResult:
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    errors: List[Dict[str, Optional[str]]] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return self.imported + self.updated + self.skipped + len(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imported": self.imported,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


@dataclass
class RefreshResult:
    synced: int = 0
    requested: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"synced": self.synced, "requested": self.requested, "skipped": self.skipped}


class ProductImportService(BaseService):
    """Imports supplier products into the catalog and refreshes their prices and stock"""

    def __init__(self, cipher: CredentialCipher, adapter_factory=create_adapter,
                 brand_mapping_service: Optional[BrandMappingService] = None, engine_override=None):
        super().__init__(engine_override)
        self.cipher = cipher
        self.adapter_factory = adapter_factory
        self.brand_mapping_service = brand_mapping_service or BrandMappingService(engine_override=self.engine)
        self.product_repo = ProductRepository()
        self.supplier_repo = SupplierRepository()
        self.brand_repo = BrandRepository()

    # ========== Import ==========

    async def import_products_by_brands(self, company_id: str, supplier_id: str, brand_ids: List[str],
                                        options: Optional[ImportOptions] = None) -> ImportBatchResult:
        options = options or ImportOptions()
        result = ImportBatchResult()
        self.log_operation("import", "supplier products", supplier_id)

        async with self.get_async_session() as session:
            supplier = self._load_supplier(session, company_id, supplier_id)
            brand_names = self._brand_names(session, company_id, brand_ids)

            adapter = self._create_adapter(supplier)
            try:
                sync_result = await adapter.sync_products(
                    brands=brand_names,
                    categories=options.categories,
                    update_existing=options.update_existing,
                    warehouse_ids=options.warehouse_ids,
                )
            finally:
                await adapter.close()

            if not sync_result.products:
                self.logger.info(f"Supplier {supplier_id} returned no products for brands {brand_names}")
                return result

            for record in sync_result.products:
                try:
                    with session.begin_nested():
                        outcome = self._import_record(session, company_id, supplier, record, options)
                except Exception as e:
                    identifier = record.identifier
                    self.logger.warning(f"Failed to import product {identifier}: {e}")
                    result.errors.append({"identifier": identifier, "message": str(e)})
                    continue

                if outcome == "imported":
                    result.imported += 1
                elif outcome == "updated":
                    result.updated += 1
                else:
                    result.skipped += 1

        self.logger.info(
            f"Import from supplier {supplier_id} finished: {result.imported} imported, "
            f"{result.updated} updated, {result.skipped} skipped, {len(result.errors)} errors"
        )
        return result

    def _import_record(self, session: Session, company_id: str, supplier: SupplierModel,
                       record: ExternalProductRecord, options: ImportOptions) -> str:
        """Merge one supplier record. Returns "imported", "updated" or "skipped"."""
        if record.external_id:
            existing = self.product_repo.find_by_external_id(session, company_id, record.external_id)
        elif record.sku:
            existing = self.product_repo.find_by_sku(session, company_id, record.sku)
        else:
            raise ValidationError("Product has neither an external id nor a SKU")

        brand_id = self.brand_mapping_service.resolve_brand_id(session, company_id, supplier.id, record.brand)

        if existing is None:
            return self._insert_product(session, company_id, supplier, record, brand_id, options)

        if not options.update_existing:
            return "skipped"

        self._update_product(session, existing, record, brand_id, options)
        return "updated"

    def _insert_product(self, session: Session, company_id: str, supplier: SupplierModel,
                        record: ExternalProductRecord, brand_id: Optional[str], options: ImportOptions) -> str:
        """
        Store a record whose lookup found no product.

        Another importer may have stored the same external id since the
        lookup; the upsert then lands on that row and the record counts as
        updated.
        """
        values = {
            "name": record.name or record.identifier,
            "description": record.description or None,
            "sku": record.sku,
            "barcode": record.barcode,
            "main_supplier_id": supplier.id,
            "source_type": "supplier",
            "attributes": self._attributes(record),
        }
        if brand_id:
            values["brand_id"] = brand_id

        if record.external_id:
            product_id, created = self.product_repo.upsert_by_external_id(
                session, company_id, record.external_id, values
            )
        else:
            product_id, created = self.product_repo.create(session, ProductModel(company_id=company_id, **values)).id, True

        if not created:
            self.logger.info(f"Product {record.external_id} was stored concurrently, merged into existing row")

        if record.images and (created or options.replace_images):
            self.product_repo.replace_images(session, product_id, record.images, alt_text=record.name)
        if record.price:
            self.product_repo.upsert_price(session, product_id, record.price, record.currency)
        return "imported" if created else "updated"

    def _update_product(self, session: Session, product: ProductModel, record: ExternalProductRecord,
                        brand_id: Optional[str], options: ImportOptions) -> None:
        values = {
            "description": record.description or product.description,
            "barcode": record.barcode or product.barcode,
            "attributes": self._attributes(record),
        }
        if record.name:
            values["name"] = record.name
        if brand_id:
            values["brand_id"] = brand_id
        self.product_repo.update_fields(session, product, values)

        if record.price:
            self.product_repo.upsert_price(session, product.id, record.price, record.currency)
        if record.images and options.replace_images:
            self.product_repo.replace_images(session, product.id, record.images, alt_text=record.name)

    @staticmethod
    def _attributes(record: ExternalProductRecord) -> Dict[str, Any]:
        attributes = dict(record.attributes or {})
        if record.category:
            attributes.setdefault("category", record.category)
        return attributes

    # ========== Refresh ==========

    async def sync_prices_from_supplier(self, company_id: str, supplier_id: str,
                                        product_ids: Optional[List[str]] = None) -> RefreshResult:
        result = RefreshResult()
        self.log_operation("price sync", "supplier", supplier_id)

        async with self.get_async_session() as session:
            supplier = self._load_supplier(session, company_id, supplier_id)
            products = self.product_repo.list_refreshable(session, company_id, supplier.id, product_ids)
            codes = [product.external_id for product in products]
            result.requested = len(codes)
            if not codes:
                return result

            adapter = self._create_adapter(supplier)
            try:
                quotes = await adapter.get_prices(codes)
            finally:
                await adapter.close()

            for quote in quotes:
                if not quote.price:
                    result.skipped += 1
                    continue
                result.synced += self.product_repo.update_price_by_external_id(
                    session, company_id, supplier.id, quote.product_id, quote.price
                )

        self.logger.info(f"Price sync for supplier {supplier_id}: {result.synced} of {result.requested} updated")
        return result

    async def sync_stocks_from_supplier(self, company_id: str, supplier_id: str, warehouse_id: Optional[str] = None,
                                        product_ids: Optional[List[str]] = None) -> RefreshResult:
        result = RefreshResult()
        self.log_operation("stock sync", "supplier", supplier_id)

        async with self.get_async_session() as session:
            supplier = self._load_supplier(session, company_id, supplier_id)
            warehouse_id = warehouse_id or supplier.default_warehouse_id
            if not warehouse_id:
                raise ValidationError("Warehouse is required for stock sync", missing_fields=["warehouse_id"])

            products = self.product_repo.list_refreshable(session, company_id, supplier.id, product_ids)
            codes = [product.external_id for product in products]
            result.requested = len(codes)
            if not codes:
                return result

            adapter = self._create_adapter(supplier)
            try:
                for batch in chunked(codes, STOCK_BATCH_SIZE):
                    levels = await adapter.get_stock_levels(batch, warehouse_id=warehouse_id)
                    for level in levels:
                        result.synced += self.product_repo.update_stock_by_external_id(
                            session, company_id, supplier.id, level.product_id, warehouse_id, level.available
                        )
            finally:
                await adapter.close()

        self.logger.info(f"Stock sync for supplier {supplier_id}: {result.synced} of {result.requested} updated")
        return result

    # ========== Helpers ==========

    def _load_supplier(self, session: Session, company_id: str, supplier_id: str) -> SupplierModel:
        supplier = self.supplier_repo.get_for_company(session, company_id, supplier_id)
        if not supplier:
            raise SupplierNotFoundError(f"Supplier {supplier_id} not found or inactive", supplier_id=supplier_id)
        return supplier

    def _brand_names(self, session: Session, company_id: str, brand_ids: List[str]) -> Optional[List[str]]:
        if not brand_ids:
            return None
        brands = {brand.id: brand.name for brand in self.brand_repo.get_many_for_company(session, company_id, brand_ids)}
        missing = [brand_id for brand_id in brand_ids if brand_id not in brands]
        if missing:
            raise BrandNotFoundError(f"Brands not found: {', '.join(missing)}", brand_id=missing[0])
        return [brands[brand_id] for brand_id in brand_ids]

    def _create_adapter(self, supplier: SupplierModel):
        config = build_adapter_config(self.cipher, supplier.api_config, supplier.default_warehouse_id)
        return self.adapter_factory(supplier.api_type, config)
