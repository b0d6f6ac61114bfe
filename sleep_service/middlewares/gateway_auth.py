from typing import List
from fastapi import Request, HTTPException, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from sleep_service.core.logger import get_logger

logger = get_logger("gateway_auth_middleware")

USER_ID_HEADER = "X-User-Id"

whitelisted_routes = [
    "/docs", "/openapi.json", "/redoc", "/favicon.ico",
    "/health",
    # Sibling services post events without an end-user identity
    "/api/v1/sleep/events/inbound",
]

class GatewayAuthMiddleware(BaseHTTPMiddleware):
    """
    Authentication happens at the API gateway, which forwards the caller's
    user id in a header. This middleware only moves it onto request.state.
    """

    def __init__(self, app, whitelisted_routes: List[str] = None):
        super().__init__(app)
        self.whitelisted_routes = whitelisted_routes or []

    def _is_whitelisted(self, path: str) -> bool:
        """Check if the route is whitelisted (public)"""
        for route in self.whitelisted_routes:
            if path.startswith(route):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        if request.url.path == "/" or self._is_whitelisted(request.url.path):
            logger.debug(f"Whitelisted route: {request.url.path}")
            return await call_next(request)

        # Skip authentication for OPTIONS requests (CORS preflight)
        if request.method == "OPTIONS":
            return await call_next(request)

        user_id = request.headers.get(USER_ID_HEADER)
        if not user_id or not user_id.strip():
            logger.warning(f"Missing {USER_ID_HEADER} header for: {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Missing user identity"}
            )

        request.state.user_id = user_id.strip()
        return await call_next(request)


def get_current_user_id(request: Request) -> str:
    """FastAPI dependency returning the gateway-supplied user id"""
    if not hasattr(request.state, 'user_id'):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not authenticated"
        )
    return request.state.user_id
