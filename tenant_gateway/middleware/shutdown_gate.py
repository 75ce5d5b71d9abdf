from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp
import logging

from tenant_gateway.errors import error_body

logger = logging.getLogger(__name__)

HEALTH_PATHS = ("/health/live", "/health/ready")


class ShutdownGateMiddleware(BaseHTTPMiddleware):
    _is_shutting_down = False

    def __init__(self, app: ASGIApp):
        super().__init__(app)

    @classmethod
    def set_shutting_down(cls, value: bool):
        cls._is_shutting_down = value
        if value:
            logger.info("Shutdown gate enabled: rejecting non-health traffic.")

    async def dispatch(self, request: Request, call_next):
        if self._is_shutting_down and request.url.path not in HEALTH_PATHS:
            return JSONResponse(
                status_code=503,
                content=error_body("SERVER_SHUTTING_DOWN", "Server is shutting down"),
            )
        return await call_next(request)
