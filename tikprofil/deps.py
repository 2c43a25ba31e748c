# tikprofil/deps.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from tikprofil.core.database import get_db
from tikprofil.models.business import Business
from tikprofil.services.auth import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


@dataclass
class OwnerContext:
    user_id: str
    business_id: int
    role: str = "owner"


def _extract_business_id(payload: Dict[str, Any]) -> Optional[int]:
    raw = payload.get("business_id", payload.get("businessId"))
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_owner(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> OwnerContext:
    """Read the owner JWT and bind the request to the owner's business."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Oturum gerekli")

    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError:
        raise _unauthorized("Token geçersiz veya süresi dolmuş")

    user_id = str(payload.get("sub") or "").strip()
    business_id = _extract_business_id(payload)
    if not user_id or business_id is None:
        raise _unauthorized("Token geçersiz (işletme bilgisi yok)")

    business = db.query(Business).filter(Business.id == business_id).first()
    if business is None or not business.is_active:
        _log_access_denied(reason="business_unavailable", user_id=user_id, business_id=business_id, request=request)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bu işletme için yetkiniz yok",
        )

    owner = OwnerContext(user_id=user_id, business_id=business_id, role=str(payload.get("role") or "owner"))
    request.state.owner = owner
    return owner


def _log_access_denied(*, reason: str, user_id: str, business_id: int | None, request: Request) -> None:
    logger.warning(
        "Access denied (%s): user_id=%s business_id=%s endpoint=%s",
        reason,
        user_id,
        business_id,
        f"{request.method} {request.url.path}",
    )
