"""Tenant middleware: attach the resolved tenant to every request."""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response


class TenantMiddleware(BaseHTTPMiddleware):
    """Resolve ``request.state.tenant`` before any route runs.

    The resolver degrades to the default tenant on its own, so this never
    short-circuits the request.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        resolver = request.app.state.tenant_resolver
        request.state.tenant = await resolver.resolve(request.headers)
        return await call_next(request)
