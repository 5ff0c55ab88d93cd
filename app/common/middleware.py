"""
Middleware de tenant y cabeceras de seguridad
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from uuid import UUID
import logging

logger = logging.getLogger(__name__)


class TenantMiddleware(BaseHTTPMiddleware):
    """
    Extrae el tenant del header X-Company-ID y lo deja en request.state.tenant_id
    """

    # Prefijos que no requieren empresa
    EXEMPT_PREFIXES = (
        "/docs",
        "/redoc",
        "/openapi.json",
        "/health",
    )
    EXEMPT_EXACT = ("/",)

    def is_exempt(self, path: str) -> bool:
        return path in self.EXEMPT_EXACT or path.startswith(self.EXEMPT_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        if self.is_exempt(request.url.path) or request.method == "OPTIONS":
            return await call_next(request)

        tenant_header = request.headers.get("X-Company-ID")
        if not tenant_header:
            return JSONResponse(
                {"detail": "Missing X-Company-ID header"},
                status_code=status.HTTP_400_BAD_REQUEST
            )

        try:
            tenant_id = UUID(tenant_header)
        except ValueError:
            return JSONResponse(
                {"detail": "Invalid X-Company-ID format. Must be a valid UUID"},
                status_code=status.HTTP_400_BAD_REQUEST
            )

        request.state.tenant_id = tenant_id
        logger.debug(f"Request to {request.url.path} with tenant_id: {tenant_id}")

        response = await call_next(request)
        response.headers["X-Tenant-ID"] = str(tenant_id)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
