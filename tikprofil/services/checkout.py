from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from tikprofil.core.config import EXPOSE_ERROR_DETAILS, ORDER_TOTAL_TOLERANCE
from tikprofil.core.metrics import checkout_events
from tikprofil.core.money import format_amount, quantize, to_decimal, within_tolerance
from tikprofil.core.request_context import bind_business, reset_request
from tikprofil.models.business import Business, BusinessSettings
from tikprofil.models.order import Order
from tikprofil.schemas.checkout import CheckoutRequest
from tikprofil.services import coupons as coupon_service
from tikprofil.services import pricing
from tikprofil.services.order_events import emit_order_created
from tikprofil.services.order_status import OrderStatus, history_entry
from tikprofil.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)

CHECKOUT_PREFIX = "[CHECKOUT]"
GENERIC_ERROR = "Sipariş işlenirken bir hata oluştu. Lütfen tekrar deneyin."


class CheckoutError(Exception):
    """Business-rule rejection surfaced to the customer as-is."""

    def __init__(self, status_code: int, message: str, details: Optional[list[str]] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.details = details or []

    def to_body(self) -> dict:
        body = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


@dataclass
class CheckoutResult:
    order: Order
    total: Decimal
    discount_amount: Decimal


def find_business_by_slug(db: Session, slug: str) -> Optional[Business]:
    normalized = (slug or "").strip().lower()
    if not normalized:
        return None
    return (
        db.query(Business)
        .filter(func.lower(Business.slug) == normalized, Business.is_active.is_(True))
        .first()
    )


def place_order(
    db: Session,
    payload: CheckoutRequest,
    *,
    client_ip: Optional[str] = None,
    user_agent: Optional[str] = None,
    now: Optional[datetime] = None,
) -> CheckoutResult:
    """Verify, price, discount and persist one order.

    Stock reservation, coupon redemption, the order row and the coupon usage
    row share one transaction: any rejection rolls all of them back.
    """
    now = as_utc(now) or utcnow()
    business_token = None

    try:
        business = find_business_by_slug(db, payload.business_slug)
        if business is None:
            raise CheckoutError(404, "İşletme bulunamadı")
        business_token = bind_business(business.id)

        settings = db.query(BusinessSettings).filter(BusinessSettings.business_id == business.id).first()
        _check_settings(settings, payload)

        lines, errors = pricing.verify_prices(db, business.id, payload.items, now)
        if errors:
            checkout_events.record("price_verification_failed")
            logger.warning(
                "%s price verification failed business_id=%s errors=%s",
                CHECKOUT_PREFIX,
                business.id,
                errors,
            )
            raise CheckoutError(400, "Fiyat doğrulama hatası", errors if EXPOSE_ERROR_DETAILS else None)
        if not lines:
            raise CheckoutError(400, "Geçerli ürün bulunamadı")
        checkout_events.record("price_verification_passed")

        subtotal = pricing.lines_subtotal(lines)
        if not within_tolerance(subtotal, payload.subtotal, ORDER_TOTAL_TOLERANCE):
            logger.warning(
                "%s subtotal mismatch business_id=%s expected=%s submitted=%s",
                CHECKOUT_PREFIX,
                business.id,
                subtotal,
                payload.subtotal,
            )
            raise CheckoutError(400, "Ara toplam uyuşmazlığı")

        delivery_fee = to_decimal(payload.delivery_fee)
        expected_fee = pricing.expected_delivery_fee(settings, payload.delivery.type, subtotal)
        if expected_fee is not None and not within_tolerance(expected_fee, delivery_fee, ORDER_TOTAL_TOLERANCE):
            raise CheckoutError(400, "Teslimat ücreti uyuşmazlığı")

        stock_errors = pricing.reserve_stock(db, business.id, lines)
        if stock_errors:
            checkout_events.record("stock_rejected")
            raise CheckoutError(400, "Stok hatası", stock_errors)

        decision = None
        discount = Decimal("0")
        if payload.coupon_code:
            decision = coupon_service.resolve_coupon(
                db,
                business_id=business.id,
                code=payload.coupon_code,
                subtotal=subtotal,
                delivery_fee=delivery_fee,
                now=now,
                lines=[line.to_cart_line() for line in lines],
                customer_phone=payload.customer.phone,
            )
            if not decision.accepted:
                checkout_events.record("coupon_rejected")
                raise CheckoutError(400, decision.reason or coupon_service.INVALID_CODE)
            discount = decision.discount_amount

        matches, total = pricing.reconcile_total(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            discount=discount,
            submitted_total=payload.total,
        )
        if not matches:
            checkout_events.record("total_mismatch")
            logger.warning(
                "%s total mismatch business_id=%s calculated=%s submitted=%s",
                CHECKOUT_PREFIX,
                business.id,
                total,
                payload.total,
            )
            raise CheckoutError(400, "Toplam tutar uyuşmazlığı")

        if decision is not None and not coupon_service.redeem_coupon(db, decision.coupon):
            checkout_events.record("coupon_rejected")
            raise CheckoutError(400, coupon_service.USAGE_LIMIT_REACHED)

        order = Order(
            business_id=business.id,
            qr_code=f"{business.slug}-{int(now.timestamp() * 1000)}",
            customer_name=payload.customer.name,
            customer_phone=payload.customer.phone,
            customer_email=payload.customer.email,
            delivery_type=payload.delivery.type,
            delivery_address=payload.delivery.address,
            table_number=payload.delivery.table_number,
            payment_method=payload.payment.method,
            items=[line.to_item_dict() for line in lines],
            order_note=payload.order_note or "",
            subtotal=subtotal,
            discount_amount=quantize(discount),
            delivery_fee=quantize(delivery_fee),
            total=total,
            coupon_id=decision.coupon.id if decision is not None else None,
            coupon_snapshot=decision.snapshot if decision is not None else None,
            status=OrderStatus.PENDING.value,
            status_history=[history_entry(OrderStatus.PENDING)],
            price_verified=True,
            verified_at=now,
            client_ip=client_ip,
            user_agent=(user_agent or "")[:300] or None,
        )
        db.add(order)
        db.flush()

        if decision is not None:
            coupon_service.record_usage(db, coupon=decision.coupon, order=order, discount_amount=discount)

        db.commit()
        db.refresh(order)
    except Exception:
        db.rollback()
        if business_token is not None:
            reset_request(business_token)
        raise

    checkout_events.record("order_created")
    logger.info(
        "%s order created business_id=%s order_id=%s total=%s discount=%s",
        CHECKOUT_PREFIX,
        business.id,
        order.id,
        total,
        discount,
        extra={"event": "order.created", "order_id": order.id},
    )
    try:
        emit_order_created(order, business_slug=business.slug, business_name=business.name)
    finally:
        reset_request(business_token)
    return CheckoutResult(order=order, total=total, discount_amount=quantize(discount))


def _check_settings(settings: Optional[BusinessSettings], payload: CheckoutRequest) -> None:
    if settings is None:
        return
    if not settings.is_active:
        raise CheckoutError(400, "Sipariş alma şu anda kapalı")
    min_order = to_decimal(settings.min_order_amount)
    if payload.delivery.type == "delivery" and min_order > 0 and to_decimal(payload.subtotal) < min_order:
        raise CheckoutError(400, f"Minimum sipariş tutarı: ₺{format_amount(min_order)}")
