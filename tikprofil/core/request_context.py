from __future__ import annotations

from contextvars import ContextVar, Token
from dataclasses import dataclass, replace


@dataclass(frozen=True)
class RequestContext:
    """Who the current request is, as seen by logs and outbound calls."""

    request_id: str | None = None
    business_id: str | None = None
    client_ip: str | None = None


_EMPTY = RequestContext()
_CURRENT: ContextVar[RequestContext] = ContextVar("tikprofil_request", default=_EMPTY)


def current_request() -> RequestContext:
    return _CURRENT.get()


def bind_request(
    *, request_id: str | None, client_ip: str | None = None, business_id: str | int | None = None
) -> Token[RequestContext]:
    """Start a fresh context for one request; pass the token to `reset_request` when done."""
    return _CURRENT.set(
        RequestContext(
            request_id=request_id,
            business_id=str(business_id) if business_id is not None else None,
            client_ip=client_ip,
        )
    )


def bind_business(business_id: str | int | None) -> Token[RequestContext]:
    """Attach the resolved business to the running request, keeping its id and client ip."""
    value = str(business_id) if business_id is not None else None
    return _CURRENT.set(replace(_CURRENT.get(), business_id=value))


def reset_request(token: Token[RequestContext]) -> None:
    _CURRENT.reset(token)


def get_request_id() -> str | None:
    return _CURRENT.get().request_id


def get_business_id() -> str | None:
    return _CURRENT.get().business_id


def get_client_ip() -> str | None:
    return _CURRENT.get().client_ip
