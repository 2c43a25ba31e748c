from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import desc
from sqlalchemy.orm import Session

from tikprofil.core.database import get_db
from tikprofil.deps import OwnerContext, get_current_owner
from tikprofil.models.order import Order
from tikprofil.schemas.order import OrderOut, StatusUpdate
from tikprofil.services.order_events import emit_order_status_changed
from tikprofil.services.order_status import InvalidStatusTransition, UnknownOrderStatus, apply_transition

router = APIRouter(prefix="/api/fastfood", tags=["orders"])


def _order_to_dict(order: Order) -> dict:
    return OrderOut.model_validate(order, from_attributes=True).to_api()


def _get_owned_order(db: Session, order_id: int, business_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id, Order.business_id == business_id).first()
    if not order:
        raise HTTPException(status_code=404, detail="Sipariş bulunamadı")
    return order


@router.get("/orders")
def list_orders(
    status: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    query = db.query(Order).filter(Order.business_id == owner.business_id)
    if status:
        statuses = [s.strip().lower() for s in status.split(",") if s.strip()]
        if statuses:
            query = query.filter(Order.status.in_(statuses))

    orders = query.order_by(desc(Order.created_at), desc(Order.id)).limit(limit).all()
    return {"success": True, "orders": [_order_to_dict(o) for o in orders]}


@router.get("/orders/{order_id}")
def get_order(
    order_id: int,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    order = _get_owned_order(db, order_id, owner.business_id)
    return {"success": True, "order": _order_to_dict(order)}


@router.put("/orders/{order_id}/status")
def update_status(
    order_id: int,
    body: StatusUpdate,
    background_tasks: BackgroundTasks,
    owner: OwnerContext = Depends(get_current_owner),
    db: Session = Depends(get_db),
):
    order = _get_owned_order(db, order_id, owner.business_id)

    try:
        previous_status = apply_transition(order, body.status, note=body.note)
    except UnknownOrderStatus as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except InvalidStatusTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    if body.internal_note is not None:
        order.internal_note = body.internal_note

    if previous_status is None and body.internal_note is None:
        return {"success": True, "status": order.status, "changed": False}

    db.commit()
    db.refresh(order)
    if previous_status is not None:
        background_tasks.add_task(emit_order_status_changed, order, previous_status)

    return {"success": True, "status": order.status, "changed": previous_status is not None}
