from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from enum import Enum
import json
import uuid


class SyncJobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SyncJobPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class SyncJobType(str, Enum):
    # Supplier -> catalog
    SUPPLIER_PRODUCT_IMPORT = "supplier_product_import"
    SUPPLIER_PRICE_SYNC = "supplier_price_sync"
    SUPPLIER_STOCK_SYNC = "supplier_stock_sync"

    # Catalog -> marketplace
    MARKETPLACE_PRICE_PUSH = "marketplace_price_push"
    MARKETPLACE_STOCK_PUSH = "marketplace_stock_push"


class SyncJobModel(SQLModel, table=True):
    """Queued sync job; the id doubles as the correlation id returned to callers"""
    __tablename__ = "sync_jobs"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: Optional[str] = Field(default=None, index=True, max_length=64)

    job_type: SyncJobType = Field(index=True)
    status: SyncJobStatus = Field(default=SyncJobStatus.PENDING, index=True)
    priority: SyncJobPriority = Field(default=SyncJobPriority.NORMAL)

    payload: Optional[str] = Field(default=None)  # JSON string
    result_data: Optional[str] = Field(default=None)  # JSON string
    error_message: Optional[str] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def set_payload(self, data: Dict[str, Any]):
        """Set payload as JSON"""
        self.payload = json.dumps(data, default=str) if data else None

    def get_payload(self) -> Dict[str, Any]:
        """Get payload from JSON"""
        return json.loads(self.payload) if self.payload else {}

    def get_result_data(self) -> Dict[str, Any]:
        return json.loads(self.result_data) if self.result_data else {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses"""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "job_type": self.job_type,
            "status": self.status,
            "priority": self.priority,
            "payload": self.get_payload(),
            "result_data": self.get_result_data(),
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
