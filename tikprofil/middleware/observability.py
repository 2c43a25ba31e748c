from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from tikprofil.core.config import TRUSTED_PROXY_HOPS
from tikprofil.core.metrics import request_metrics
from tikprofil.core.request_context import bind_request, reset_request

logger = logging.getLogger(__name__)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        client_ip = client_ip_from_request(request)
        request.state.request_id = request_id
        context_token = bind_request(request_id=request_id, client_ip=client_ip)

        status_code = 500
        endpoint = request.url.path
        method = request.method

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            business_id = _extract_business_id(request)
            duration_ms = round((time.perf_counter() - start) * 1000, 2)

            request_metrics.observe(
                endpoint=endpoint,
                method=method,
                status_code=status_code,
                duration_ms=duration_ms,
                business_id=business_id,
            )

            logger.info(
                "request completed",
                extra={
                    "request_id": request_id,
                    "business_id": business_id,
                    "client_ip": client_ip,
                    "endpoint": endpoint,
                    "method": method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )

            if "response" in locals():
                response.headers["X-Request-ID"] = request_id

            reset_request(context_token)


def client_ip_from_request(request: Request, trusted_hops: int | None = None) -> str:
    """Socket peer, or the address our own proxies saw when TRUSTED_PROXY_HOPS is set.

    Each of our proxies appends the peer it saw to X-Forwarded-For, so the
    entry `trusted_hops` from the right is the client; earlier ones are spoofable.
    """
    hops = TRUSTED_PROXY_HOPS if trusted_hops is None else trusted_hops
    if hops > 0:
        forwarded = [part.strip() for part in request.headers.get("X-Forwarded-For", "").split(",") if part.strip()]
        if forwarded:
            return forwarded[-min(hops, len(forwarded))]
        real_ip = request.headers.get("X-Real-IP", "").strip()
        if real_ip:
            return real_ip
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _extract_business_id(request: Request) -> str | None:
    owner = getattr(request.state, "owner", None)
    if owner is not None and getattr(owner, "business_id", None) is not None:
        return str(owner.business_id)
    business_id = getattr(request.state, "business_id", None)
    return str(business_id) if business_id is not None else None
