"""HTTP middleware for request scoping."""

from collections.abc import Awaitable, Callable
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from readiness.lib.constants import ORG_HEADER

CallNext = Callable[[Request], Awaitable[Response]]

UNSCOPED_PATHS = {"/health"}


class OrganizationMiddleware(BaseHTTPMiddleware):
    """Require the organization header set by the identity layer.

    The value is exposed as request.state.organization_id and scopes every
    projection read and write.
    """

    def __init__(self, app: Any, header: str = ORG_HEADER):
        super().__init__(app)
        self.header = header

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if request.url.path in UNSCOPED_PATHS:
            return await call_next(request)

        org_id = (request.headers.get(self.header) or "").strip()
        if not org_id:
            return JSONResponse(
                {
                    "error": "ORGANIZATION_MISSING",
                    "message": f"Missing required header: {self.header}",
                },
                status_code=401,
            )

        request.state.organization_id = org_id
        return await call_next(request)
