"""Caller identity middleware using ContextVar.

Authentication happens upstream (gateway or session layer); by the time a
request reaches the rental API the caller is identified by the
X-Customer-ID or X-Staff-ID header. The ids are stored in ContextVars so
routers can call get_current_customer() / get_current_staff() without
explicit parameter passing.
"""

from contextvars import ContextVar

from fastapi import HTTPException
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# ---------------------------------------------------------------------------
# Context variables — task-safe caller state
# ---------------------------------------------------------------------------

_current_customer: ContextVar[int | None] = ContextVar("current_customer", default=None)
_current_staff: ContextVar[int | None] = ContextVar("current_staff", default=None)


def get_current_customer() -> int | None:
    """Return the customer id for the current request, if any."""
    return _current_customer.get()


def get_current_staff() -> int | None:
    """Return the staff id for the current request, if any."""
    return _current_staff.get()


async def require_customer() -> int:
    """FastAPI dependency: the request must come from a customer."""
    customer_id = get_current_customer()
    if customer_id is None:
        raise HTTPException(status_code=401, detail="Customer identification required")
    return customer_id


async def require_staff() -> int:
    """FastAPI dependency: the request must come from a staff member."""
    staff_id = get_current_staff()
    if staff_id is None:
        raise HTTPException(status_code=401, detail="Staff identification required")
    return staff_id


def _parse_id(raw: str | None) -> int | None:
    if not raw:
        return None
    raw = raw.strip()
    return int(raw) if raw.isdigit() else None


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class CallerMiddleware(BaseHTTPMiddleware):
    """Extract the caller from request headers.

    Malformed ids are treated as absent.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        customer_token = _current_customer.set(_parse_id(request.headers.get("X-Customer-ID")))
        staff_token = _current_staff.set(_parse_id(request.headers.get("X-Staff-ID")))
        try:
            response = await call_next(request)
            return response
        finally:
            _current_customer.reset(customer_token)
            _current_staff.reset(staff_token)
