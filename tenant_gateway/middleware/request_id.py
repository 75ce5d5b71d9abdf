from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from tenant_gateway.utils.id import new_request_id

REQUEST_ID_HEADER = "X-Request-Id"


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tags every request with an id, honouring one supplied by the caller."""

    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        request.state.request_id = req_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = req_id
        return response
