import uuid
from datetime import datetime
from typing import Optional, List, Dict, Any

from sqlmodel import Session, select

from CatalogBridge.models.catalog_models import BrandModel
from CatalogBridge.models.integration_models import BrandSupplierMappingModel
from CatalogBridge.repositories.base_repository import BaseRepository, dialect_insert


class BrandRepository(BaseRepository[BrandModel]):
    def __init__(self):
        super().__init__(BrandModel)

    def get_for_company(self, session: Session, company_id: str, brand_id: str) -> Optional[BrandModel]:
        return session.exec(
            select(BrandModel).where(BrandModel.id == brand_id, BrandModel.company_id == company_id)
        ).first()

    def get_many_for_company(self, session: Session, company_id: str, brand_ids: List[str]) -> List[BrandModel]:
        if not brand_ids:
            return []
        return session.exec(
            select(BrandModel).where(BrandModel.company_id == company_id, BrandModel.id.in_(brand_ids))
        ).all()

    def list_active(self, session: Session, company_id: str) -> List[BrandModel]:
        return session.exec(
            select(BrandModel).where(BrandModel.company_id == company_id, BrandModel.is_active == True)
        ).all()


class BrandMappingRepository(BaseRepository[BrandSupplierMappingModel]):
    def __init__(self):
        super().__init__(BrandSupplierMappingModel)

    def list_for_supplier(self, session: Session, company_id: str, supplier_id: str,
                          active_only: bool = False) -> List[BrandSupplierMappingModel]:
        query = select(BrandSupplierMappingModel).where(
            BrandSupplierMappingModel.company_id == company_id,
            BrandSupplierMappingModel.supplier_id == supplier_id,
        )
        if active_only:
            query = query.where(BrandSupplierMappingModel.is_active == True)
        return session.exec(query.order_by(BrandSupplierMappingModel.external_brand_name)).all()

    def find(self, session: Session, company_id: str, supplier_id: str, brand_id: str,
             external_brand_name: str) -> Optional[BrandSupplierMappingModel]:
        return session.exec(
            select(BrandSupplierMappingModel).where(
                BrandSupplierMappingModel.company_id == company_id,
                BrandSupplierMappingModel.supplier_id == supplier_id,
                BrandSupplierMappingModel.brand_id == brand_id,
                BrandSupplierMappingModel.external_brand_name == external_brand_name,
            )
        ).first()

    def upsert(self, session: Session, company_id: str, supplier_id: str, brand_id: str,
               external_brand_name: str, mapping_settings: Dict[str, Any],
               sync_enabled: Optional[bool]) -> BrandSupplierMappingModel:
        """
        Insert or reactivate a synonym on its natural key.

        mapping_settings is written as given; callers merge it with the stored
        settings beforehand.
        """
        now = datetime.utcnow()
        stmt = dialect_insert(session, BrandSupplierMappingModel.__table__).values(
            id=str(uuid.uuid4()),
            company_id=company_id,
            supplier_id=supplier_id,
            brand_id=brand_id,
            external_brand_name=external_brand_name,
            mapping_settings=mapping_settings,
            sync_enabled=True if sync_enabled is None else sync_enabled,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        set_ = {
            "mapping_settings": stmt.excluded.mapping_settings,
            "is_active": True,
            "updated_at": stmt.excluded.updated_at,
        }
        if sync_enabled is not None:
            set_["sync_enabled"] = stmt.excluded.sync_enabled
        stmt = stmt.on_conflict_do_update(
            index_elements=["company_id", "supplier_id", "brand_id", "external_brand_name"],
            set_=set_,
        )
        session.exec(stmt)

        mapping = self.find(session, company_id, supplier_id, brand_id, external_brand_name)
        session.refresh(mapping)
        return mapping
