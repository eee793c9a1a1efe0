import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Sequence, Tuple

from sqlalchemy import delete, update
from sqlmodel import Session, select

from CatalogBridge.models.catalog_models import (
    PriceModel,
    PriceType,
    ProductImageModel,
    ProductModel,
    WarehouseProductLinkModel,
)
from CatalogBridge.repositories.base_repository import BaseRepository, dialect_insert

logger = logging.getLogger(__name__)


class ProductRepository(BaseRepository[ProductModel]):
    """
    Product persistence for supplier imports.

    Upserts go through the (company_id, external_id) unique index so that
    concurrent imports of the same supplier product never produce two rows.
    """

    def __init__(self):
        super().__init__(ProductModel)

    def find_by_external_id(self, session: Session, company_id: str, external_id: str) -> Optional[ProductModel]:
        return session.exec(
            select(ProductModel).where(
                ProductModel.company_id == company_id,
                ProductModel.external_id == external_id,
            )
        ).first()

    def find_by_sku(self, session: Session, company_id: str, sku: str) -> Optional[ProductModel]:
        return session.exec(
            select(ProductModel).where(
                ProductModel.company_id == company_id,
                ProductModel.sku == sku,
            )
        ).first()

    def upsert_by_external_id(self, session: Session, company_id: str, external_id: str,
                              values: Dict[str, Any]) -> Tuple[str, bool]:
        """
        Insert a product or update the row already holding this external id.

        Returns the id of the stored row and whether this call inserted it.
        """
        now = datetime.utcnow()
        row = {
            "id": str(uuid.uuid4()),
            "company_id": company_id,
            "external_id": external_id,
            "is_active": True,
            "created_at": now,
            "updated_at": now,
            "attributes": {},
            "source_type": "supplier",
            **values,
        }

        stmt = dialect_insert(session, ProductModel.__table__).values(**row)
        update_columns = {
            key: stmt.excluded[key]
            for key in row
            if key not in ("id", "company_id", "external_id", "created_at")
        }
        stmt = stmt.on_conflict_do_update(
            index_elements=["company_id", "external_id"],
            set_=update_columns,
        )
        session.exec(stmt)

        product_id = session.exec(
            select(ProductModel.id).where(
                ProductModel.company_id == company_id,
                ProductModel.external_id == external_id,
            )
        ).one()
        created = product_id == row["id"]
        logger.debug(
            f"Upserted product external_id={external_id} for company {company_id} "
            f"({'inserted' if created else 'updated'})"
        )
        return product_id, created

    def update_fields(self, session: Session, product: ProductModel, values: Dict[str, Any]) -> ProductModel:
        for key, value in values.items():
            setattr(product, key, value)
        product.updated_at = datetime.utcnow()
        return self.update(session, product)

    def add_images(self, session: Session, product_id: str, image_urls: Sequence[str], alt_text: Optional[str] = None) -> List[ProductImageModel]:
        images = []
        for index, url in enumerate(image_urls):
            image = ProductImageModel(
                product_id=product_id,
                image_url=url,
                alt_text=alt_text,
                sort_order=index,
                is_main=index == 0,
            )
            session.add(image)
            images.append(image)
        session.flush()
        return images

    def replace_images(self, session: Session, product_id: str, image_urls: Sequence[str], alt_text: Optional[str] = None) -> List[ProductImageModel]:
        session.exec(delete(ProductImageModel).where(ProductImageModel.product_id == product_id))
        return self.add_images(session, product_id, image_urls, alt_text)

    def upsert_price(self, session: Session, product_id: str, value: Decimal, currency: str = "RUB",
                     price_type: str = PriceType.SUPPLIER) -> None:
        now = datetime.utcnow()
        stmt = dialect_insert(session, PriceModel.__table__).values(
            id=str(uuid.uuid4()),
            product_id=product_id,
            price_type=price_type,
            value=value,
            currency=currency,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["product_id", "price_type"],
            set_={
                "value": stmt.excluded.value,
                "currency": stmt.excluded.currency,
                "is_active": True,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        session.exec(stmt)

    def get_price(self, session: Session, product_id: str, price_type: str = PriceType.SUPPLIER) -> Optional[PriceModel]:
        return session.exec(
            select(PriceModel).where(
                PriceModel.product_id == product_id,
                PriceModel.price_type == price_type,
            )
        ).first()

    def list_refreshable(self, session: Session, company_id: str, supplier_id: str,
                         product_ids: Optional[Sequence[str]] = None) -> List[ProductModel]:
        """Products linked to a supplier product that can be refreshed from it"""
        query = select(ProductModel).where(
            ProductModel.company_id == company_id,
            ProductModel.main_supplier_id == supplier_id,
            ProductModel.external_id.is_not(None),
        )
        if product_ids:
            query = query.where(ProductModel.id.in_(list(product_ids)))
        return session.exec(query.order_by(ProductModel.external_id)).all()

    def _supplier_product_ids(self, company_id: str, supplier_id: str, external_id: str):
        return select(ProductModel.id).where(
            ProductModel.company_id == company_id,
            ProductModel.main_supplier_id == supplier_id,
            ProductModel.external_id == external_id,
        )

    def update_price_by_external_id(self, session: Session, company_id: str, supplier_id: str,
                                    external_id: str, value: Decimal) -> int:
        """Set the supplier price of one product. Returns the number of affected rows."""
        result = session.exec(
            update(PriceModel)
            .where(
                PriceModel.price_type == PriceType.SUPPLIER,
                PriceModel.product_id.in_(self._supplier_product_ids(company_id, supplier_id, external_id)),
            )
            .values(value=value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def update_stock_by_external_id(self, session: Session, company_id: str, supplier_id: str,
                                    external_id: str, warehouse_id: str, quantity: int) -> int:
        """Set the stock of one product in one warehouse. Returns the number of affected rows."""
        result = session.exec(
            update(WarehouseProductLinkModel)
            .where(
                WarehouseProductLinkModel.warehouse_id == warehouse_id,
                WarehouseProductLinkModel.product_id.in_(
                    self._supplier_product_ids(company_id, supplier_id, external_id)
                ),
            )
            .values(quantity=quantity, available_quantity=quantity, last_updated=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_stock_link(self, session: Session, product_id: str, warehouse_id: str) -> Optional[WarehouseProductLinkModel]:
        return session.exec(
            select(WarehouseProductLinkModel).where(
                WarehouseProductLinkModel.product_id == product_id,
                WarehouseProductLinkModel.warehouse_id == warehouse_id,
            )
        ).first()
