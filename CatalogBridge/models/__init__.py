from .catalog_models import (
    BrandModel,
    PriceModel,
    PriceType,
    ProductImageModel,
    ProductModel,
    WarehouseProductLinkModel,
)
from .integration_models import BrandSupplierMappingModel, MarketplaceModel, SupplierModel
from .sync_job_models import SyncJobModel, SyncJobPriority, SyncJobStatus, SyncJobType
