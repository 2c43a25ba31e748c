from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import field_validator

from tikprofil.schemas.base import CamelModel

DiscountType = Literal["fixed", "percentage", "free_delivery", "bogo"]
ApplicableTo = Literal["all", "categories", "products"]


class CouponBase(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    emoji: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    max_discount_amount: Optional[float] = None
    bogo_type: Optional[str] = None
    bogo_buy_quantity: Optional[int] = None
    bogo_get_quantity: Optional[int] = None
    bogo_discount_percent: Optional[int] = None
    min_order_amount: Optional[float] = None
    max_usage_count: Optional[int] = None
    usage_per_user: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: Optional[bool] = None
    applicable_to: Optional[ApplicableTo] = None
    applicable_category_ids: Optional[List[str]] = None
    applicable_product_ids: Optional[List[str]] = None
    is_public: Optional[bool] = None
    is_first_order_only: Optional[bool] = None

    @field_validator("discount_value", "max_discount_amount", "min_order_amount")
    @classmethod
    def _non_negative_amount(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("Tutar negatif olamaz")
        return value

    @field_validator("max_usage_count", "usage_per_user")
    @classmethod
    def _non_negative_count(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("Kullanım limiti negatif olamaz")
        return value


class CouponCreate(CouponBase):
    code: Optional[str] = None


class CouponUpdate(CouponBase):
    code: Optional[str] = None


class CouponOut(CamelModel):
    id: int
    business_id: int
    code: str
    title: str
    description: str = ""
    emoji: str = "🎉"
    discount_type: str
    discount_value: float
    max_discount_amount: Optional[float] = None
    bogo_type: Optional[str] = None
    bogo_buy_quantity: Optional[int] = None
    bogo_get_quantity: Optional[int] = None
    bogo_discount_percent: Optional[int] = None
    min_order_amount: float = 0
    max_usage_count: int = 0
    usage_per_user: int = 0
    current_usage_count: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    applicable_to: str = "all"
    applicable_category_ids: List[str] = []
    applicable_product_ids: List[str] = []
    is_public: bool = True
    is_first_order_only: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PublicCouponOut(CamelModel):
    id: int
    code: str
    title: str
    description: str = ""
    emoji: str = "🎉"
    discount_type: str
    discount_value: float
    max_discount_amount: Optional[float] = None
    min_order_amount: float = 0
    valid_until: Optional[datetime] = None
    is_first_order_only: bool = False
    applicable_to: str = "all"


class CouponUsageOut(CamelModel):
    id: int
    coupon_id: int
    order_id: int
    code: str
    customer_phone: Optional[str] = None
    discount_amount: float
    used_at: Optional[datetime] = None


class CouponSummary(CamelModel):
    id: int
    code: str
    title: str
    discount_type: str
    discount_value: float


class ValidateCouponRequest(CamelModel):
    business_id: Optional[int] = None
    business_slug: Optional[str] = None
    code: str = ""
    subtotal: float = 0
    delivery_fee: float = 0
    product_ids: List[str] = []
    category_ids: List[str] = []
    customer_phone: Optional[str] = None


class ValidateCouponResponse(CamelModel):
    valid: bool
    coupon: Optional[CouponSummary] = None
    discount: Optional[float] = None
    message: Optional[str] = None
