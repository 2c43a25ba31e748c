from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from tikprofil.core.database import get_db
from tikprofil.deps import OwnerContext, get_current_owner
from tikprofil.models.business import Business
from tikprofil.models.coupon import Coupon, CouponUsage
from tikprofil.schemas.coupon import (
    CouponCreate,
    CouponOut,
    CouponSummary,
    CouponUpdate,
    CouponUsageOut,
    PublicCouponOut,
    ValidateCouponRequest,
    ValidateCouponResponse,
)
from tikprofil.services import coupons as coupon_service
from tikprofil.services.checkout import find_business_by_slug
from tikprofil.utils.dates import as_utc, utcnow
from tikprofil.utils.text import digits_only

router = APIRouter(prefix="/api/fastfood", tags=["coupons"])

logger = logging.getLogger(__name__)

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
# fields copied verbatim from the request onto the row
_PLAIN_FIELDS = (
    "title",
    "description",
    "emoji",
    "discount_type",
    "discount_value",
    "max_discount_amount",
    "bogo_type",
    "bogo_buy_quantity",
    "bogo_get_quantity",
    "bogo_discount_percent",
    "min_order_amount",
    "max_usage_count",
    "usage_per_user",
    "valid_from",
    "valid_until",
    "is_active",
    "applicable_to",
    "applicable_category_ids",
    "applicable_product_ids",
    "is_public",
    "is_first_order_only",
)
_NULLABLE_FIELDS = {"max_discount_amount", "bogo_type", "valid_until"}


def _coupon_to_dict(coupon: Coupon) -> dict:
    return CouponOut.model_validate(coupon, from_attributes=True).to_api()


def _get_owned_coupon(db: Session, coupon_id: int, business_id: int) -> Coupon:
    coupon = db.query(Coupon).filter(Coupon.id == coupon_id, Coupon.business_id == business_id).first()
    if not coupon:
        raise HTTPException(status_code=404, detail="Kupon bulunamadı")
    return coupon


def _code_taken(db: Session, business_id: int, code: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Coupon.id).filter(Coupon.business_id == business_id, func.upper(Coupon.code) == code)
    if exclude_id is not None:
        query = query.filter(Coupon.id != exclude_id)
    return query.first() is not None


def _success_message(discount_type: str, discount: Decimal) -> str:
    if discount_type == "free_delivery":
        return "Ücretsiz teslimat uygulandı!"
    whole = discount.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return f"{whole} TL indirim uygulandı!"


@router.post("/validate-coupon", response_model=ValidateCouponResponse, response_model_by_alias=True)
def validate_coupon(payload: ValidateCouponRequest, db: Session = Depends(get_db)):
    code = coupon_service.normalize_code(payload.code)
    if not code or (payload.business_id is None and not payload.business_slug):
        return ValidateCouponResponse(valid=False, message="İşletme ve kupon kodu gereklidir")

    if payload.business_id is not None:
        business = db.query(Business).filter(Business.id == payload.business_id).first()
    else:
        business = find_business_by_slug(db, payload.business_slug)
    if business is None:
        return ValidateCouponResponse(valid=False, message="İşletme bulunamadı")

    try:
        decision = coupon_service.resolve_coupon(
            db,
            business_id=business.id,
            code=code,
            subtotal=Decimal(str(payload.subtotal or 0)),
            delivery_fee=Decimal(str(payload.delivery_fee or 0)),
            product_ids=payload.product_ids,
            category_ids=payload.category_ids,
            customer_phone=digits_only(payload.customer_phone) or None,
        )
    except Exception:
        logger.exception("Coupon validation failed business_id=%s code=%s", business.id, code)
        return ValidateCouponResponse(valid=False, message="Bir hata oluştu, lütfen tekrar deneyin")

    if not decision.accepted:
        return ValidateCouponResponse(valid=False, message=decision.reason)

    coupon = decision.coupon
    return ValidateCouponResponse(
        valid=True,
        coupon=CouponSummary(
            id=coupon.id,
            code=coupon.code,
            title=coupon.title,
            discount_type=coupon.discount_type,
            discount_value=float(coupon.discount_value or 0),
        ),
        discount=float(decision.discount_amount),
        message=_success_message(coupon.discount_type, decision.discount_amount),
    )


@router.get("/public-coupons")
def list_public_coupons(
    business_slug: Optional[str] = Query(default=None, alias="businessSlug"),
    db: Session = Depends(get_db),
):
    if not business_slug:
        return JSONResponse(status_code=400, content={"success": False, "error": "businessSlug gerekli"})

    business = find_business_by_slug(db, business_slug)
    if business is None:
        return JSONResponse(status_code=404, content={"success": False, "error": "İşletme bulunamadı"})

    now = utcnow()
    coupons = (
        db.query(Coupon)
        .filter(
            Coupon.business_id == business.id,
            Coupon.is_active.is_(True),
            Coupon.is_public.is_(True),
        )
        .all()
    )

    visible = []
    for coupon in coupons:
        valid_from = as_utc(coupon.valid_from)
        valid_until = as_utc(coupon.valid_until)
        if valid_from and valid_from > now:
            continue
        if valid_until and valid_until < now:
            continue
        max_usage = int(coupon.max_usage_count or 0)
        if max_usage > 0 and int(coupon.current_usage_count or 0) >= max_usage:
            continue
        visible.append(coupon)

    visible.sort(key=lambda c: Decimal(str(c.discount_value or 0)), reverse=True)
    return JSONResponse(
        content={
            "success": True,
            "coupons": [PublicCouponOut.model_validate(c, from_attributes=True).to_api() for c in visible],
        },
        headers=NO_STORE_HEADERS,
    )


@router.get("/coupons")
def list_coupons(owner: OwnerContext = Depends(get_current_owner), db: Session = Depends(get_db)):
    coupons = (
        db.query(Coupon)
        .filter(Coupon.business_id == owner.business_id)
        .order_by(Coupon.created_at.desc(), Coupon.id.desc())
        .all()
    )
    return {"success": True, "coupons": [_coupon_to_dict(c) for c in coupons]}


@router.post("/coupons")
def create_coupon(
    payload: CouponCreate,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    code = coupon_service.normalize_code(payload.code)
    if not code or not (payload.title or "").strip() or not payload.discount_type:
        raise HTTPException(status_code=400, detail="Kod, başlık ve indirim tipi gereklidir")
    if _code_taken(db, owner.business_id, code):
        raise HTTPException(status_code=400, detail="Bu kupon kodu zaten kullanılıyor")

    values = payload.model_dump(include=set(_PLAIN_FIELDS), exclude_none=True)
    values.setdefault("valid_from", utcnow())
    coupon = Coupon(business_id=owner.business_id, code=code, current_usage_count=0, **values)
    db.add(coupon)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(coupon)
    logger.info("Coupon created business_id=%s coupon_id=%s code=%s", owner.business_id, coupon.id, code)
    return {"success": True, "coupon": _coupon_to_dict(coupon)}


@router.put("/coupons/{coupon_id}")
def update_coupon(
    coupon_id: int,
    payload: CouponUpdate,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    coupon = _get_owned_coupon(db, coupon_id, owner.business_id)

    if payload.code is not None:
        code = coupon_service.normalize_code(payload.code)
        if not code:
            raise HTTPException(status_code=400, detail="Kupon kodu boş olamaz")
        if code != coupon.code and _code_taken(db, owner.business_id, code, exclude_id=coupon.id):
            raise HTTPException(status_code=400, detail="Bu kupon kodu zaten kullanılıyor")
        coupon.code = code

    # explicit nulls only clear nullable columns
    for field_name, value in payload.model_dump(include=set(_PLAIN_FIELDS), exclude_unset=True).items():
        if value is None and field_name not in _NULLABLE_FIELDS:
            continue
        setattr(coupon, field_name, value)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(coupon)
    return {"success": True, "coupon": _coupon_to_dict(coupon)}


@router.delete("/coupons/{coupon_id}")
def delete_coupon(
    coupon_id: int,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    coupon = _get_owned_coupon(db, coupon_id, owner.business_id)

    # the usage ledger keeps redeemed coupons alive
    has_usages = db.query(CouponUsage.id).filter(CouponUsage.coupon_id == coupon.id).first() is not None
    if has_usages:
        coupon.is_active = False
    else:
        db.delete(coupon)
    db.commit()
    logger.info(
        "Coupon removed business_id=%s coupon_id=%s deactivated=%s",
        owner.business_id,
        coupon_id,
        has_usages,
    )
    return {"success": True, "deactivated": has_usages}


@router.get("/coupons/{coupon_id}/usages")
def list_coupon_usages(
    coupon_id: int,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    coupon = _get_owned_coupon(db, coupon_id, owner.business_id)
    usages = (
        db.query(CouponUsage)
        .filter(CouponUsage.coupon_id == coupon.id)
        .order_by(CouponUsage.used_at.desc(), CouponUsage.id.desc())
        .all()
    )
    return {
        "success": True,
        "usages": [CouponUsageOut.model_validate(u, from_attributes=True).to_api() for u in usages],
    }
