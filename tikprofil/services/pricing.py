from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from tikprofil.core.config import ORDER_TOTAL_TOLERANCE
from tikprofil.core.money import quantize, to_decimal, within_tolerance
from tikprofil.models.business import BusinessSettings
from tikprofil.models.product import Product
from tikprofil.schemas.checkout import CheckoutItem
from tikprofil.services.coupons import CartLine
from tikprofil.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

_ZERO = Decimal("0")


@dataclass
class VerifiedLine:
    product_id: str
    category_id: Optional[str]
    name: str
    quantity: int
    base_price: Decimal
    extras: list = field(default_factory=list)
    size: Optional[dict] = None
    note: Optional[str] = None

    @property
    def extras_total(self) -> Decimal:
        return sum((to_decimal(extra["price"]) for extra in self.extras), _ZERO)

    @property
    def unit_price(self) -> Decimal:
        return self.base_price + self.extras_total

    @property
    def line_total(self) -> Decimal:
        return quantize(self.unit_price * self.quantity)

    def to_cart_line(self) -> CartLine:
        return CartLine(
            product_id=self.product_id,
            category_id=self.category_id,
            unit_price=self.unit_price,
            quantity=self.quantity,
        )

    def to_item_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "categoryId": self.category_id,
            "name": self.name,
            "quantity": self.quantity,
            "basePrice": float(self.base_price),
            "selectedSize": self.size,
            "selectedExtras": self.extras,
            "note": self.note,
            "unitPrice": float(self.unit_price),
            "lineTotal": float(self.line_total),
        }


def effective_price(product: Product, now: Optional[datetime] = None) -> Decimal:
    """Sale price while `discount_until` is in the future, list price otherwise."""
    now = as_utc(now) or utcnow()
    discount_until = as_utc(product.discount_until)
    if product.discount_price is not None and discount_until and discount_until > now:
        return to_decimal(product.discount_price)
    return to_decimal(product.price)


def verify_prices(
    db: Session,
    business_id: int,
    items: Sequence[CheckoutItem],
    now: Optional[datetime] = None,
) -> tuple[list[VerifiedLine], list[str]]:
    """Re-price the cart from the product table.

    Client prices are only compared, never trusted. Extras unknown to the
    product are kept at the submitted price (custom extras).
    """
    product_ids = {item.product_id for item in items}
    products = {
        product.id: product
        for product in db.query(Product).filter(Product.id.in_(product_ids)).all()
    }

    verified: list[VerifiedLine] = []
    errors: list[str] = []

    for item in items:
        product = products.get(item.product_id)
        if product is None:
            errors.append(f"Ürün bulunamadı: {item.name} ({item.product_id})")
            continue
        if product.business_id != business_id:
            errors.append(f"Ürün bu işletmeye ait değil: {item.name}")
            continue
        if not product.in_stock or not product.is_active:
            errors.append(f"Ürün stokta yok: {product.name}")
            continue

        price = effective_price(product, now)

        size_snapshot = None
        if item.selected_size is not None:
            size = next((s for s in (product.sizes or []) if s.get("id") == item.selected_size.id), None)
            if size is None:
                errors.append(f"Geçersiz boyut seçimi: {item.name} - {item.selected_size.name}")
                continue
            price += to_decimal(size.get("priceModifier", 0))
            size_snapshot = {
                "id": size.get("id"),
                "name": size.get("name", item.selected_size.name),
                "priceModifier": float(to_decimal(size.get("priceModifier", 0))),
            }

        extras = []
        extras_ok = True
        known_extras = {extra.get("id"): extra for extra in (product.extras or [])}
        for extra in item.selected_extras:
            known = known_extras.get(extra.id)
            if known is None:
                logger.warning(
                    "[CHECKOUT] custom extra accepted product_id=%s extra_id=%s",
                    product.id,
                    extra.id,
                )
                extras.append({"id": extra.id, "name": extra.name, "price": extra.price})
                continue
            if not within_tolerance(known.get("price", 0), extra.price, ORDER_TOTAL_TOLERANCE):
                errors.append(
                    f"Ekstra fiyat uyuşmazlığı: {extra.name} (DB: {known.get('price')}, Client: {extra.price})"
                )
                extras_ok = False
                continue
            extras.append(
                {
                    "id": extra.id,
                    "name": known.get("name", extra.name),
                    "price": float(to_decimal(known.get("price", 0))),
                }
            )
        if not extras_ok:
            continue

        if not within_tolerance(price, item.base_price, ORDER_TOTAL_TOLERANCE):
            errors.append(
                f"Fiyat uyuşmazlığı: {item.name} (DB: ₺{quantize(price)}, Client: ₺{quantize(item.base_price)})"
            )
            continue

        verified.append(
            VerifiedLine(
                product_id=product.id,
                category_id=product.category_id,
                name=product.name,
                quantity=item.quantity,
                base_price=quantize(price),
                extras=extras,
                size=size_snapshot,
                note=item.note,
            )
        )

    return verified, errors


def reserve_stock(db: Session, business_id: int, lines: Sequence[VerifiedLine]) -> list[str]:
    """Decrement tracked stock with conditional UPDATEs.

    Runs inside the checkout transaction; the caller rolls back on any error.
    """
    wanted: "OrderedDict[str, int]" = OrderedDict()
    names: dict[str, str] = {}
    for line in lines:
        wanted[line.product_id] = wanted.get(line.product_id, 0) + line.quantity
        names[line.product_id] = line.name

    errors: list[str] = []
    for product_id, quantity in wanted.items():
        updated = (
            db.query(Product)
            .filter(
                Product.id == product_id,
                Product.business_id == business_id,
                Product.track_stock.is_(True),
                Product.stock >= quantity,
            )
            .update(
                {
                    Product.stock: Product.stock - quantity,
                    Product.in_stock: Product.stock - quantity > 0,
                },
                synchronize_session=False,
            )
        )
        if updated:
            continue

        product = db.get(Product, product_id)
        if product is None or not product.track_stock:
            continue
        errors.append(f"Yetersiz stok: {names[product_id]} (İstenen: {quantity}, Mevcut: {product.stock or 0})")

    return errors


def lines_subtotal(lines: Sequence[VerifiedLine]) -> Decimal:
    return quantize(sum((line.line_total for line in lines), _ZERO))


def expected_delivery_fee(settings: Optional[BusinessSettings], delivery_type: str, subtotal) -> Optional[Decimal]:
    """Fee the business charges for this order, or None when it has no settings."""
    if settings is None:
        return None
    if delivery_type != "delivery":
        return _ZERO
    threshold = to_decimal(settings.free_delivery_threshold)
    if threshold > 0 and to_decimal(subtotal) >= threshold:
        return _ZERO
    return quantize(settings.delivery_fee)


def calculate_total(subtotal, delivery_fee, discount) -> Decimal:
    return quantize(to_decimal(subtotal) + to_decimal(delivery_fee) - to_decimal(discount))


def reconcile_total(*, subtotal, delivery_fee, discount, submitted_total) -> tuple[bool, Decimal]:
    calculated = calculate_total(subtotal, delivery_fee, discount)
    return within_tolerance(calculated, submitted_total, ORDER_TOTAL_TOLERANCE), calculated
