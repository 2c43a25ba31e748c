import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from tikprofil.core.database import Base


class Coupon(Base):
    __tablename__ = "ff_coupons"
    __table_args__ = (UniqueConstraint("business_id", "code", name="uq_ff_coupons_business_code"),)

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    code = Column(String(64), nullable=False)  # always upper-case
    title = Column(String(200), nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    emoji = Column(String(16), nullable=False, default="🎉")

    discount_type = Column(String(20), nullable=False)  # fixed / percentage / free_delivery / bogo
    discount_value = Column(Numeric(10, 2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(10, 2), nullable=True)

    bogo_type = Column(String(30), nullable=True)
    bogo_buy_quantity = Column(Integer, nullable=False, default=1)
    bogo_get_quantity = Column(Integer, nullable=False, default=1)
    bogo_discount_percent = Column(Integer, nullable=False, default=100)

    min_order_amount = Column(Numeric(10, 2), nullable=False, default=0)
    # 0 = unlimited
    max_usage_count = Column(Integer, nullable=False, default=0)
    usage_per_user = Column(Integer, nullable=False, default=0)
    current_usage_count = Column(Integer, nullable=False, default=0)

    valid_from = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    applicable_to = Column(String(20), nullable=False, default="all")  # all / categories / products
    applicable_category_ids = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    applicable_product_ids = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    is_public = Column(Boolean, nullable=False, default=True)
    is_first_order_only = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    usages = relationship("CouponUsage", back_populates="coupon")


class CouponUsage(Base):
    """Append-only redemption ledger."""

    __tablename__ = "ff_coupon_usages"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    coupon_id = Column(Integer, ForeignKey("ff_coupons.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("ff_orders.id"), nullable=False, index=True)
    code = Column(String(64), nullable=False)
    customer_phone = Column(String(30), nullable=True, index=True)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    used_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    coupon = relationship("Coupon", back_populates="usages")
    order = relationship("Order", back_populates="coupon_usages")
