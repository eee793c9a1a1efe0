"""
Integration Models

Suppliers and marketplaces with their (encrypted) API configuration, and the
brand synonym table used to map vendor brand names onto catalog brands.
"""

import uuid
from datetime import datetime
from typing import Optional, Dict, Any

from sqlalchemy import Column, JSON, Text, UniqueConstraint
from sqlmodel import SQLModel, Field


class SupplierModel(SQLModel, table=True):
    """
    Supplier integration.

    api_config holds a credential envelope produced by CredentialCipher, or a
    plaintext JSON config that carries no secrets.
    """
    __tablename__ = "suppliers"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    code: Optional[str] = Field(default=None, max_length=100)
    api_type: str = Field(max_length=50)  # adapter type code, e.g. "rs24"
    api_config: Optional[str] = Field(default=None, sa_column=Column(Text))
    default_warehouse_id: Optional[str] = Field(default=None, max_length=64)
    priority: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_tested_at: Optional[datetime] = Field(default=None)
    test_status: Optional[str] = Field(default=None, max_length=50)  # "success", "failed"


class MarketplaceModel(SQLModel, table=True):
    __tablename__ = "marketplaces"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    api_type: str = Field(max_length=50)  # "ozon", "wildberries", "yandex"
    api_config: Optional[str] = Field(default=None, sa_column=Column(Text))
    priority: int = Field(default=0)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    last_tested_at: Optional[datetime] = Field(default=None)
    test_status: Optional[str] = Field(default=None, max_length=50)


class BrandSupplierMappingModel(SQLModel, table=True):
    """Confirmed synonym: a supplier's brand name for one catalog brand"""
    __tablename__ = "brand_supplier_mappings"
    __table_args__ = (
        UniqueConstraint(
            "company_id", "supplier_id", "brand_id", "external_brand_name", name="uq_brand_supplier_mapping"
        ),
    )

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    supplier_id: str = Field(foreign_key="suppliers.id", index=True)
    brand_id: str = Field(foreign_key="brands.id", index=True)
    external_brand_name: str = Field(max_length=255)
    mapping_settings: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    sync_enabled: bool = Field(default=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
