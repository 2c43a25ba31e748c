from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from tikprofil.schemas.base import CamelModel


class StatusHistoryEntry(CamelModel):
    status: str
    timestamp: str
    note: Optional[str] = None


class OrderOut(CamelModel):
    id: int
    business_id: int
    qr_code: str = ""
    customer_name: str
    customer_phone: str
    customer_email: Optional[str] = None
    delivery_type: str
    delivery_address: Optional[str] = None
    table_number: Optional[str] = None
    payment_method: str
    items: List[Dict[str, Any]] = []
    order_note: str = ""
    subtotal: float
    discount_amount: float
    delivery_fee: float
    total: float
    coupon_id: Optional[int] = None
    coupon_snapshot: Optional[Dict[str, Any]] = None
    status: str
    status_history: List[StatusHistoryEntry] = []
    price_verified: bool = False
    verified_at: Optional[datetime] = None
    internal_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class StatusUpdate(CamelModel):
    status: str
    note: Optional[str] = None
    internal_note: Optional[str] = None


class WhatsAppOrderItem(CamelModel):
    name: str
    quantity: int = 1
    price: float = 0


class WhatsAppOrderRequest(CamelModel):
    business_slug: str
    customer_name: str
    customer_phone: str
    items: List[WhatsAppOrderItem]
    note: Optional[str] = None


class WhatsAppOrderResponse(CamelModel):
    success: bool = True
    url: str
    message: str
