from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.orm import relationship

from tikprofil.core.database import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True)
    slug = Column(String(120), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False, default="")
    whatsapp_phone = Column(String(30), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    settings = relationship("BusinessSettings", back_populates="business", uselist=False)


class BusinessSettings(Base):
    __tablename__ = "ff_settings"

    id = Column(Integer, primary_key=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, unique=True)
    # accepting orders
    is_active = Column(Boolean, nullable=False, default=True)
    # only enforced for delivery orders
    min_order_amount = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    # 0 disables free delivery
    free_delivery_threshold = Column(Numeric(10, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    business = relationship("Business", back_populates="settings")
