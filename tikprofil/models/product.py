import uuid

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB

from tikprofil.core.database import Base


class Product(Base):
    __tablename__ = "ff_products"

    id = Column(String(100), primary_key=True, default=lambda: uuid.uuid4().hex)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    category_id = Column(String(100), nullable=True, index=True)
    name = Column(String(200), nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    # sale price, only effective while discount_until is in the future
    discount_price = Column(Numeric(10, 2), nullable=True)
    discount_until = Column(DateTime(timezone=True), nullable=True)
    in_stock = Column(Boolean, nullable=False, default=True)
    track_stock = Column(Boolean, nullable=False, default=False)
    stock = Column(Integer, nullable=False, default=0)
    # [{"id", "name", "priceModifier"}]
    sizes = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    # [{"id", "name", "price"}]
    extras = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
