from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from tikprofil.core.config import COUPON_BOGO_ENABLED, COUPON_CLAMP_FIXED_DISCOUNT
from tikprofil.core.money import format_amount, quantize, to_decimal
from tikprofil.models.coupon import Coupon, CouponUsage
from tikprofil.models.order import Order
from tikprofil.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

INVALID_CODE = "Geçersiz kupon kodu"
INACTIVE = "Bu kupon artık geçerli değil"
NOT_STARTED = "Bu kupon henüz başlamadı"
EXPIRED = "Bu kuponun süresi dolmuş"
USAGE_LIMIT_REACHED = "Bu kupon kullanım limitine ulaşmış"
ALREADY_USED = "Bu kuponu daha önce kullandınız"
FIRST_ORDER_ONLY = "Bu kupon sadece ilk sipariş için geçerli"
NOT_FOR_PRODUCTS = "Bu kupon sepetinizdeki ürünlerde geçerli değil"
NOT_FOR_CATEGORIES = "Bu kupon sepetinizdeki kategorilerde geçerli değil"


def min_order_message(amount) -> str:
    return f"Minimum sipariş tutarı: ₺{format_amount(amount)}"


@dataclass
class CartLine:
    product_id: str
    category_id: Optional[str]
    unit_price: Decimal
    quantity: int


@dataclass
class CouponDecision:
    accepted: bool
    reason: Optional[str] = None
    discount_amount: Decimal = Decimal("0")
    coupon: Optional[Coupon] = None
    snapshot: Optional[dict] = field(default=None)

    @classmethod
    def reject(cls, reason: str, coupon: Optional[Coupon] = None) -> "CouponDecision":
        return cls(accepted=False, reason=reason, coupon=coupon)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def coupon_snapshot(coupon: Coupon) -> dict:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "discountType": coupon.discount_type,
        "discountValue": float(to_decimal(coupon.discount_value)),
    }


def find_coupon(db: Session, business_id: int, code: str) -> Optional[Coupon]:
    normalized = normalize_code(code)
    if not normalized:
        return None
    return (
        db.query(Coupon)
        .filter(
            Coupon.business_id == business_id,
            func.upper(Coupon.code) == normalized,
        )
        .first()
    )


def count_customer_usages(db: Session, coupon_id: int, customer_phone: str) -> int:
    return (
        db.query(func.count(CouponUsage.id))
        .filter(CouponUsage.coupon_id == coupon_id, CouponUsage.customer_phone == customer_phone)
        .scalar()
        or 0
    )


def count_customer_orders(db: Session, business_id: int, customer_phone: str) -> int:
    return (
        db.query(func.count(Order.id))
        .filter(Order.business_id == business_id, Order.customer_phone == customer_phone)
        .scalar()
        or 0
    )


def calculate_discount(
    coupon: Coupon,
    *,
    subtotal,
    delivery_fee,
    lines: Sequence[CartLine] = (),
) -> Decimal:
    subtotal = to_decimal(subtotal)
    delivery_fee = to_decimal(delivery_fee)
    value = to_decimal(coupon.discount_value)
    discount_type = coupon.discount_type

    if discount_type == "fixed":
        discount = value
        if COUPON_CLAMP_FIXED_DISCOUNT:
            discount = min(discount, subtotal + delivery_fee)
    elif discount_type == "percentage":
        discount = subtotal * value / Decimal("100")
        cap = to_decimal(coupon.max_discount_amount)
        if cap > 0 and discount > cap:
            discount = cap
    elif discount_type == "free_delivery":
        discount = delivery_fee
    elif discount_type == "bogo":
        discount = _bogo_discount(coupon, lines) if COUPON_BOGO_ENABLED else Decimal("0")
    else:
        logger.warning("Unknown coupon discount type coupon_id=%s type=%s", coupon.id, discount_type)
        discount = Decimal("0")

    return quantize(max(discount, Decimal("0")))


def _bogo_discount(coupon: Coupon, lines: Sequence[CartLine]) -> Decimal:
    buy = int(coupon.bogo_buy_quantity or 1)
    get = int(coupon.bogo_get_quantity or 1)
    percent = to_decimal(coupon.bogo_discount_percent or 100)

    units: list[Decimal] = []
    for line in lines:
        if not _line_is_eligible(coupon, line):
            continue
        units.extend([to_decimal(line.unit_price)] * int(line.quantity))

    free_units = (len(units) // (buy + get)) * get
    if free_units <= 0:
        return Decimal("0")
    cheapest = sorted(units)[:free_units]
    return sum(cheapest, Decimal("0")) * percent / Decimal("100")


def _line_is_eligible(coupon: Coupon, line: CartLine) -> bool:
    if coupon.applicable_to == "products":
        return line.product_id in (coupon.applicable_product_ids or [])
    if coupon.applicable_to == "categories":
        return line.category_id in (coupon.applicable_category_ids or [])
    return True


def evaluate_coupon(
    coupon: Optional[Coupon],
    *,
    subtotal,
    delivery_fee,
    now: Optional[datetime] = None,
    lines: Sequence[CartLine] = (),
    product_ids: Optional[Iterable[str]] = None,
    category_ids: Optional[Iterable[str]] = None,
    customer_usage_count: int = 0,
    prior_order_count: int = 0,
) -> CouponDecision:
    """Run the coupon rules in order and return the first rejection, or the discount.

    Pure: all counts coming from the database are passed in by the caller.
    """
    if coupon is None:
        return CouponDecision.reject(INVALID_CODE)

    now = as_utc(now) or utcnow()
    subtotal = to_decimal(subtotal)

    if not coupon.is_active:
        return CouponDecision.reject(INACTIVE, coupon)

    valid_from = as_utc(coupon.valid_from)
    if valid_from and valid_from > now:
        return CouponDecision.reject(NOT_STARTED, coupon)

    valid_until = as_utc(coupon.valid_until)
    if valid_until and valid_until < now:
        return CouponDecision.reject(EXPIRED, coupon)

    min_order = to_decimal(coupon.min_order_amount)
    if min_order > 0 and subtotal < min_order:
        return CouponDecision.reject(min_order_message(min_order), coupon)

    max_usage = int(coupon.max_usage_count or 0)
    if max_usage > 0 and int(coupon.current_usage_count or 0) >= max_usage:
        return CouponDecision.reject(USAGE_LIMIT_REACHED, coupon)

    per_user = int(coupon.usage_per_user or 0)
    if per_user > 0 and customer_usage_count >= per_user:
        return CouponDecision.reject(ALREADY_USED, coupon)

    if coupon.is_first_order_only and prior_order_count > 0:
        return CouponDecision.reject(FIRST_ORDER_ONLY, coupon)

    if product_ids is None:
        product_ids = [line.product_id for line in lines]
    if category_ids is None:
        category_ids = [line.category_id for line in lines if line.category_id]

    if coupon.applicable_to == "products":
        allowed = set(coupon.applicable_product_ids or [])
        if not allowed.intersection(product_ids):
            return CouponDecision.reject(NOT_FOR_PRODUCTS, coupon)
    if coupon.applicable_to == "categories":
        allowed = set(coupon.applicable_category_ids or [])
        if not allowed.intersection(category_ids):
            return CouponDecision.reject(NOT_FOR_CATEGORIES, coupon)

    discount = calculate_discount(coupon, subtotal=subtotal, delivery_fee=delivery_fee, lines=lines)
    return CouponDecision(
        accepted=True,
        discount_amount=discount,
        coupon=coupon,
        snapshot=coupon_snapshot(coupon),
    )


def resolve_coupon(
    db: Session,
    *,
    business_id: int,
    code: str,
    subtotal,
    delivery_fee,
    now: Optional[datetime] = None,
    lines: Sequence[CartLine] = (),
    product_ids: Optional[Iterable[str]] = None,
    category_ids: Optional[Iterable[str]] = None,
    customer_phone: Optional[str] = None,
) -> CouponDecision:
    coupon = find_coupon(db, business_id, code)
    customer_usage_count = 0
    prior_order_count = 0
    if coupon is not None and customer_phone:
        if int(coupon.usage_per_user or 0) > 0:
            customer_usage_count = count_customer_usages(db, coupon.id, customer_phone)
        if coupon.is_first_order_only:
            prior_order_count = count_customer_orders(db, business_id, customer_phone)

    decision = evaluate_coupon(
        coupon,
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        now=now,
        lines=lines,
        product_ids=product_ids,
        category_ids=category_ids,
        customer_usage_count=customer_usage_count,
        prior_order_count=prior_order_count,
    )
    if not decision.accepted:
        logger.info(
            "[COUPON] rejected business_id=%s code=%s reason=%s",
            business_id,
            normalize_code(code),
            decision.reason,
        )
    return decision


def redeem_coupon(db: Session, coupon: Coupon) -> bool:
    """Consume one use of the coupon with a single conditional UPDATE.

    Returns False when the cap was reached by a concurrent redemption.
    Must run inside the caller's transaction.
    """
    updated = (
        db.query(Coupon)
        .filter(
            Coupon.id == coupon.id,
            or_(
                Coupon.max_usage_count == 0,
                Coupon.current_usage_count < Coupon.max_usage_count,
            ),
        )
        .update(
            {Coupon.current_usage_count: Coupon.current_usage_count + 1},
            synchronize_session=False,
        )
    )
    if updated != 1:
        return False
    db.expire(coupon, ["current_usage_count"])
    return True


def record_usage(db: Session, *, coupon: Coupon, order: Order, discount_amount) -> CouponUsage:
    usage = CouponUsage(
        business_id=order.business_id,
        coupon_id=coupon.id,
        order_id=order.id,
        code=coupon.code,
        customer_phone=order.customer_phone,
        discount_amount=quantize(discount_amount),
    )
    db.add(usage)
    return usage
