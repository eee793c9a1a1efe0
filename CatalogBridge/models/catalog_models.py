"""
Catalog Models

Brands, products, product images, prices and per-warehouse stock links.
Every row is scoped by company_id (the tenant).
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional, Dict, Any

from sqlalchemy import Column, JSON, Numeric, UniqueConstraint
from sqlmodel import SQLModel, Field


class PriceType:
    SUPPLIER = "supplier"
    RETAIL = "retail"
    MARKETPLACE = "marketplace"


class BrandModel(SQLModel, table=True):
    __tablename__ = "brands"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=255)
    description: Optional[str] = Field(default=None)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ProductModel(SQLModel, table=True):
    """
    Internal catalog product.

    (company_id, external_id) is unique so supplier imports can upsert
    without a read-then-write race. Rows without an external id are merged
    by sku instead.
    """
    __tablename__ = "products"
    __table_args__ = (UniqueConstraint("company_id", "external_id", name="uq_products_company_external_id"),)

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    name: str = Field(max_length=500)
    description: Optional[str] = Field(default=None)
    sku: Optional[str] = Field(default=None, index=True, max_length=255)
    barcode: Optional[str] = Field(default=None, max_length=100)
    brand_id: Optional[str] = Field(default=None, foreign_key="brands.id")
    external_id: Optional[str] = Field(default=None, index=True, max_length=255)
    main_supplier_id: Optional[str] = Field(default=None, foreign_key="suppliers.id", index=True)
    source_type: str = Field(default="manual", max_length=50)  # "manual", "supplier", "marketplace"
    attributes: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class ProductImageModel(SQLModel, table=True):
    __tablename__ = "product_images"

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    product_id: str = Field(foreign_key="products.id", index=True)
    image_url: str = Field(max_length=2000)
    alt_text: Optional[str] = Field(default=None, max_length=500)
    sort_order: int = Field(default=0)
    is_main: bool = Field(default=False)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class PriceModel(SQLModel, table=True):
    __tablename__ = "prices"
    __table_args__ = (UniqueConstraint("product_id", "price_type", name="uq_prices_product_type"),)

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    product_id: str = Field(foreign_key="products.id", index=True)
    price_type: str = Field(default=PriceType.SUPPLIER, max_length=50)
    value: Decimal = Field(sa_column=Column(Numeric(14, 2), nullable=False))
    currency: str = Field(default="RUB", max_length=3)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class WarehouseProductLinkModel(SQLModel, table=True):
    """Stock of one product in one warehouse"""
    __tablename__ = "warehouse_product_links"
    __table_args__ = (UniqueConstraint("product_id", "warehouse_id", name="uq_warehouse_product"),)

    id: Optional[str] = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    product_id: str = Field(foreign_key="products.id", index=True)
    warehouse_id: str = Field(index=True, max_length=64)
    quantity: int = Field(default=0)
    available_quantity: int = Field(default=0)
    is_active: bool = Field(default=True)
    last_updated: datetime = Field(default_factory=datetime.utcnow)
