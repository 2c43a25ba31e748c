import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from tikprofil.core.database import Base


class Order(Base):
    __tablename__ = "ff_orders"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    qr_code = Column(String(160), nullable=False, default="")

    # Customer
    customer_name = Column(String(120), nullable=False, default="")
    customer_phone = Column(String(30), nullable=False, index=True)
    customer_email = Column(String(200), nullable=True)

    # Delivery: pickup / delivery / table
    delivery_type = Column(String(20), nullable=False)
    delivery_address = Column(Text, nullable=True)
    table_number = Column(String(20), nullable=True)
    payment_method = Column(String(30), nullable=False)  # cash / credit_card / online

    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    order_note = Column(Text, nullable=False, default="")

    subtotal = Column(Numeric(10, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    coupon_id = Column(Integer, ForeignKey("ff_coupons.id"), nullable=True)
    # {id, code, discountType, discountValue}
    coupon_snapshot = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    status_history = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)

    price_verified = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    client_ip = Column(String(64), nullable=True)
    user_agent = Column(String(300), nullable=True)
    internal_note = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    coupon_usages = relationship("CouponUsage", back_populates="order")
