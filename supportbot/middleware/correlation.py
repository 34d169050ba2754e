"""Per-request correlation ids for logs and responses."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..utils.logging_config import set_correlation_id

HEADER = "X-Correlation-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        incoming = request.headers.get(HEADER)
        corr_id = set_correlation_id(incoming.strip()[:64] if incoming and incoming.strip() else None)
        response = await call_next(request)
        response.headers[HEADER] = corr_id
        return response
