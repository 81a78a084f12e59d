"""Request-scoped middleware for API requests."""

from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assigns a request ID (or keeps a well-formed inbound one) to every request."""

    HEADER = "X-Request-ID"
    MAX_INBOUND_LENGTH = 64

    async def dispatch(self, request: Request, call_next):
        inbound = request.headers.get(self.HEADER, "")
        if inbound and len(inbound) <= self.MAX_INBOUND_LENGTH and inbound.isprintable():
            request_id = inbound
        else:
            request_id = str(uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[self.HEADER] = request_id
        return response
