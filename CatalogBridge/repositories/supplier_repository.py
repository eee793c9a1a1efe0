from typing import Optional

from sqlmodel import Session, select

from CatalogBridge.models.integration_models import MarketplaceModel, SupplierModel
from CatalogBridge.repositories.base_repository import BaseRepository


class SupplierRepository(BaseRepository[SupplierModel]):
    def __init__(self):
        super().__init__(SupplierModel)

    def get_for_company(self, session: Session, company_id: str, supplier_id: str,
                        active_only: bool = True) -> Optional[SupplierModel]:
        query = select(SupplierModel).where(
            SupplierModel.id == supplier_id,
            SupplierModel.company_id == company_id,
        )
        if active_only:
            query = query.where(SupplierModel.is_active == True)
        return session.exec(query).first()


class MarketplaceRepository(BaseRepository[MarketplaceModel]):
    def __init__(self):
        super().__init__(MarketplaceModel)

    def get_for_company(self, session: Session, company_id: str, marketplace_id: str,
                        active_only: bool = True) -> Optional[MarketplaceModel]:
        query = select(MarketplaceModel).where(
            MarketplaceModel.id == marketplace_id,
            MarketplaceModel.company_id == company_id,
        )
        if active_only:
            query = query.where(MarketplaceModel.is_active == True)
        return session.exec(query).first()
