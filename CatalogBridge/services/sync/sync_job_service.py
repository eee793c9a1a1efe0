"""
Sync Job Producer

Persists sync requests as pending jobs and hands back a correlation id the
caller can poll. Workers that consume the queue live outside this package.
"""

import logging
from typing import Any, Dict, Optional, Union

from CatalogBridge.exceptions import SyncJobNotFoundError, ValidationError
from CatalogBridge.models.sync_job_models import SyncJobModel, SyncJobPriority, SyncJobStatus, SyncJobType
from CatalogBridge.repositories.base_repository import BaseRepository
from CatalogBridge.services.base_service import BaseService

logger = logging.getLogger(__name__)

_REQUIRED_PAYLOAD_FIELDS = {
    SyncJobType.SUPPLIER_PRODUCT_IMPORT: ["supplier_id", "brand_ids"],
    SyncJobType.SUPPLIER_PRICE_SYNC: ["supplier_id"],
    SyncJobType.SUPPLIER_STOCK_SYNC: ["supplier_id"],
    SyncJobType.MARKETPLACE_PRICE_PUSH: ["marketplace_id"],
    SyncJobType.MARKETPLACE_STOCK_PUSH: ["marketplace_id"],
}


class SyncJobProducer(BaseService):
    def __init__(self, engine_override=None):
        super().__init__(engine_override)
        self.job_repo = BaseRepository(SyncJobModel)

    async def enqueue(self, job_type: Union[SyncJobType, str], payload: Dict[str, Any],
                      company_id: Optional[str] = None,
                      priority: SyncJobPriority = SyncJobPriority.NORMAL) -> str:
        """Store a pending job and return its correlation id"""
        try:
            job_type = SyncJobType(job_type)
        except ValueError:
            raise ValidationError(f"Unknown sync job type: {job_type}", field_errors={"job_type": "unknown"})

        payload = dict(payload or {})
        self.validate_required_fields(payload, _REQUIRED_PAYLOAD_FIELDS[job_type])

        async with self.get_async_session() as session:
            job = SyncJobModel(
                company_id=company_id,
                job_type=job_type,
                status=SyncJobStatus.PENDING,
                priority=SyncJobPriority(priority),
            )
            job.set_payload(payload)
            job = self.job_repo.create(session, job)
            correlation_id = job.id

        self.logger.info(f"Enqueued {job_type.value} job {correlation_id}")
        return correlation_id

    async def get_job(self, correlation_id: str) -> Dict[str, Any]:
        async with self.get_async_session() as session:
            job = self.job_repo.get_by_id(session, correlation_id)
            if not job:
                raise SyncJobNotFoundError(f"Sync job {correlation_id} not found", correlation_id=correlation_id)
            return job.to_dict()
