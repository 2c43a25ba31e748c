from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from tikprofil.core.database import get_db
from tikprofil.schemas.order import WhatsAppOrderRequest, WhatsAppOrderResponse
from tikprofil.services.checkout import find_business_by_slug
from tikprofil.services.whatsapp_link import MissingWhatsAppNumber, build_order_message, build_whatsapp_url

router = APIRouter(prefix="/api/fastfood", tags=["whatsapp"])


@router.post("/whatsapp-order", response_model=WhatsAppOrderResponse)
def whatsapp_order(payload: WhatsAppOrderRequest, db: Session = Depends(get_db)):
    """Build a wa.me link carrying the order summary. Nothing is persisted."""
    if not payload.items:
        raise HTTPException(status_code=400, detail="Sepet boş")

    business = find_business_by_slug(db, payload.business_slug)
    if business is None:
        raise HTTPException(status_code=404, detail="İşletme bulunamadı")

    message = build_order_message(
        business_name=business.name,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        items=payload.items,
        note=payload.note,
    )
    try:
        url = build_whatsapp_url(business.whatsapp_phone, message)
    except MissingWhatsAppNumber as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return WhatsAppOrderResponse(url=url, message=message)
