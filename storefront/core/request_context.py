"""Per-request correlation ids for log records"""

import uuid

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from storefront.core.utils.logging_config import correlation_id_ctx

REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every log line of a request with one id, echoed back in the response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        # Accept caller ids only when they look sane
        correlation_id = incoming if 0 < len(incoming) <= 128 and incoming.isprintable() else str(uuid.uuid4())

        token = correlation_id_ctx.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)

        response.headers[REQUEST_ID_HEADER] = correlation_id
        return response
