from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from tikprofil.core.metrics import checkout_events, request_metrics
from tikprofil.deps import OwnerContext, get_current_owner

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


def _require_admin(owner: OwnerContext = Depends(get_current_owner)) -> OwnerContext:
    if owner.role != "admin":
        raise HTTPException(status_code=403, detail="Bu işlem için yetkiniz yok")
    return owner


@router.get("")
def service_metrics(_owner: OwnerContext = Depends(_require_admin)):
    return {"requests": request_metrics.snapshot(), "checkout": checkout_events.snapshot()}


@router.get("/businesses")
def business_metrics(_owner: OwnerContext = Depends(_require_admin)):
    return {"businesses": request_metrics.snapshot_per_business()}
