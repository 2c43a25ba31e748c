from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import EmailStr, ValidationError, field_validator, model_validator

from tikprofil.core.config import ORDER_TOTAL_TOLERANCE
from tikprofil.core.money import within_tolerance
from tikprofil.schemas.base import CamelModel
from tikprofil.utils.text import digits_only, full_sanitize, sanitize_string


def _bounded(value: float, *, low: float, high: float, message: str | None = None) -> float:
    if value < low:
        raise ValueError(f"En az {low:g} olmalı")
    if value > high:
        raise ValueError(message or f"En fazla {high:g} olabilir")
    return value


def _require_text(value: str, *, min_length: int, max_length: int, message: str, too_long: str = "Metin çok uzun") -> str:
    if len(value or "") < min_length:
        raise ValueError(message)
    if len(value) > max_length:
        raise ValueError(too_long)
    return value


class CheckoutExtra(CamelModel):
    id: str
    name: str
    price: float

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _require_text(value, min_length=1, max_length=100, message="Ekstra ID gerekli")

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        return full_sanitize(_require_text(value, min_length=1, max_length=100, message="Ekstra adı gerekli"))

    @field_validator("price")
    @classmethod
    def _check_price(cls, value: float) -> float:
        return _bounded(value, low=0, high=9999, message="Ekstra fiyatı çok yüksek")


class CheckoutSize(CamelModel):
    id: str
    name: str
    price_modifier: float = 0

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        return _require_text(value, min_length=1, max_length=100, message="Boyut ID gerekli")

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        return full_sanitize(_require_text(value, min_length=1, max_length=50, message="Boyut adı gerekli"))

    @field_validator("price_modifier")
    @classmethod
    def _check_modifier(cls, value: float) -> float:
        return _bounded(value, low=-9999, high=9999)


class CheckoutItem(CamelModel):
    product_id: str
    name: str
    base_price: float
    quantity: int
    selected_extras: List[CheckoutExtra] = []
    selected_size: Optional[CheckoutSize] = None
    note: Optional[str] = None

    @field_validator("product_id")
    @classmethod
    def _check_product_id(cls, value: str) -> str:
        return _require_text(value, min_length=1, max_length=100, message="Ürün ID gerekli")

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        return full_sanitize(_require_text(value, min_length=1, max_length=100, message="Ürün adı gerekli"))

    @field_validator("base_price")
    @classmethod
    def _check_price(cls, value: float) -> float:
        return _bounded(value, low=0, high=99999, message="Fiyat çok yüksek")

    @field_validator("quantity")
    @classmethod
    def _check_quantity(cls, value: int) -> int:
        if value < 1:
            raise ValueError("En az 1 adet gerekli")
        if value > 99:
            raise ValueError("En fazla 99 adet")
        return value

    @field_validator("selected_extras")
    @classmethod
    def _check_extras(cls, value: List[CheckoutExtra]) -> List[CheckoutExtra]:
        if len(value) > 20:
            raise ValueError("Çok fazla ekstra seçimi")
        return value

    @field_validator("note")
    @classmethod
    def _clean_note(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if len(value) > 500:
            raise ValueError("Not çok uzun")
        return full_sanitize(value) or None


class CheckoutCustomer(CamelModel):
    name: str
    phone: str
    email: Optional[EmailStr] = None

    @field_validator("name")
    @classmethod
    def _clean_name(cls, value: str) -> str:
        return full_sanitize(_require_text(value, min_length=2, max_length=100, message="İsim en az 2 karakter olmalı"))

    @field_validator("phone")
    @classmethod
    def _clean_phone(cls, value: str) -> str:
        return digits_only(_require_text(value, min_length=10, max_length=20, message="Telefon gerekli"))

    @field_validator("email", mode="wrap")
    @classmethod
    def _clean_email(cls, value, handler) -> Optional[str]:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        try:
            email = handler(value.strip() if isinstance(value, str) else value)
        except ValidationError:
            raise ValueError("Geçerli e-posta girin")
        return email.lower() if email else None


class CheckoutDelivery(CamelModel):
    type: Literal["pickup", "delivery", "table"]
    address: Optional[str] = None
    table_number: Optional[str] = None

    @field_validator("address")
    @classmethod
    def _clean_address(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if len(value) > 500:
            raise ValueError("Adres çok uzun")
        return full_sanitize(value)

    @field_validator("table_number")
    @classmethod
    def _clean_table(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if len(value) > 20:
            raise ValueError("Masa numarası çok uzun")
        return sanitize_string(value)


class CheckoutPayment(CamelModel):
    method: Literal["cash", "credit_card", "online"]


class CheckoutRequest(CamelModel):
    business_slug: str
    items: List[CheckoutItem]
    customer: CheckoutCustomer
    delivery: CheckoutDelivery
    payment: CheckoutPayment
    coupon_code: Optional[str] = None
    order_note: Optional[str] = None
    subtotal: float
    discount_amount: float = 0
    delivery_fee: float = 0
    total: float

    @field_validator("business_slug")
    @classmethod
    def _clean_slug(cls, value: str) -> str:
        return sanitize_string(_require_text(value, min_length=1, max_length=100, message="İşletme slug gerekli"))

    @field_validator("items")
    @classmethod
    def _check_items(cls, value: List[CheckoutItem]) -> List[CheckoutItem]:
        if not value:
            raise ValueError("Sepet boş")
        if len(value) > 50:
            raise ValueError("Çok fazla ürün")
        return value

    @field_validator("coupon_code")
    @classmethod
    def _clean_coupon(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if len(value) > 50:
            raise ValueError("Kupon kodu çok uzun")
        return sanitize_string(value.upper()) or None

    @field_validator("order_note")
    @classmethod
    def _clean_order_note(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        if len(value) > 500:
            raise ValueError("Not çok uzun")
        return full_sanitize(value)

    @field_validator("subtotal", "discount_amount", "total")
    @classmethod
    def _check_amount(cls, value: float) -> float:
        return _bounded(value, low=0, high=99999)

    @field_validator("delivery_fee")
    @classmethod
    def _check_fee(cls, value: float) -> float:
        return _bounded(value, low=0, high=9999)

    @model_validator(mode="after")
    def _check_business_rules(self) -> "CheckoutRequest":
        calculated = self.subtotal + self.delivery_fee - self.discount_amount
        if not within_tolerance(calculated, self.total, ORDER_TOTAL_TOLERANCE):
            raise ValueError("Toplam tutar hesaplama hatası")
        if self.delivery.type == "delivery" and len(self.delivery.address or "") < 10:
            raise ValueError("Teslimat adresi gerekli (en az 10 karakter)")
        if self.delivery.type == "table" and not self.delivery.table_number:
            raise ValueError("Masa numarası gerekli")
        return self


class CheckoutResponse(CamelModel):
    success: bool = True
    order_id: int
    total: float
    discount_amount: float
    message: str = "Siparişiniz başarıyla alındı"
