from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from tikprofil.core.database import get_db
from tikprofil.core.rate_limiter import RateLimitDecision, checkout_rate_limiter
from tikprofil.middleware.observability import client_ip_from_request
from tikprofil.schemas.base import first_validation_message, validation_issues
from tikprofil.schemas.checkout import CheckoutRequest, CheckoutResponse
from tikprofil.services.checkout import CHECKOUT_PREFIX, GENERIC_ERROR, CheckoutError, place_order

router = APIRouter(prefix="/api/fastfood", tags=["checkout"])

logger = logging.getLogger(__name__)

RATE_LIMIT_ACTION = "fastfood_checkout"


def _rate_limit_headers(decision: RateLimitDecision) -> dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
    }
    if not decision.allowed:
        headers["Retry-After"] = str(decision.retry_after_seconds)
    return headers


def _error(status_code: int, message: str, headers: dict[str, str]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message}, headers=headers)


@router.post("/checkout")
async def checkout(request: Request, db: Session = Depends(get_db)):
    client_ip = client_ip_from_request(request)
    decision = checkout_rate_limiter.check(subject=client_ip, action=RATE_LIMIT_ACTION)
    headers = _rate_limit_headers(decision)
    if not decision.allowed:
        logger.warning("%s rate limit exceeded client_ip=%s", CHECKOUT_PREFIX, client_ip)
        return _error(429, "Çok fazla istek. Lütfen bekleyin.", headers)

    try:
        body = await request.json()
    except ValueError:
        return _error(400, "Geçersiz istek formatı", headers)

    try:
        payload = CheckoutRequest.model_validate(body)
    except ValidationError as exc:
        logger.info("%s validation failed issues=%s", CHECKOUT_PREFIX, validation_issues(exc))
        return _error(400, first_validation_message(exc), headers)

    try:
        result = await run_in_threadpool(
            place_order,
            db,
            payload,
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
        )
    except CheckoutError as exc:
        return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)
    except Exception:
        logger.exception("%s unexpected error business_slug=%s", CHECKOUT_PREFIX, payload.business_slug)
        return _error(500, GENERIC_ERROR, headers)

    request.state.business_id = result.order.business_id
    response = CheckoutResponse(
        order_id=result.order.id,
        total=float(result.total),
        discount_amount=float(result.discount_amount),
    )
    return JSONResponse(content=response.to_api(), headers=headers)
