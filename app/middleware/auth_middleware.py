"""Authentication middleware: protects sync and monitoring routes."""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from app.utils.errors import AuthError
from app.utils.logger import log

# Paths that require a bearer token; /analytics-api checks per action
PROTECTED_PREFIXES = (
    "/sync",
    "/monitor",
)


class AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not any(path.startswith(p) for p in PROTECTED_PREFIXES):
            return await call_next(request)

        identity = request.app.state.identity_client
        try:
            request.state.user = await identity.authenticate(request.headers.get("Authorization"))
        except AuthError as e:
            log.warning(f"Auth failed for {path}: {e.message}")
            return JSONResponse(status_code=401, content={"error": e.message})

        return await call_next(request)
