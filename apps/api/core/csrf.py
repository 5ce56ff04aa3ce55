"""
Origin validation for state-changing requests.

Browsers always attach Origin (or at least Referer) to cross-site POSTs,
so rejecting unknown origins blocks forged form submissions. Safe
methods and machine-to-machine endpoints are never checked.
"""
import logging
import re
from typing import Optional
from urllib.parse import urlparse

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from core.exceptions import ErrorCode

logger = logging.getLogger(__name__)

SAFE_METHODS = {"GET", "HEAD", "OPTIONS"}
EXEMPT_PREFIXES = ("/v1/billing/webhooks", "/v1/cron")

DEV_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")
PREVIEW_ORIGIN_RE = re.compile(r"^https://no-name-yet-app-[a-z0-9-]+\.vercel\.app$")


def _origin_from_referer(referer: str) -> Optional[str]:
    parsed = urlparse(referer)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def is_allowed_origin(origin: str) -> bool:
    allowed = {settings.BASE_URL.rstrip("/"), *DEV_ORIGINS}
    if settings.CORS_ORIGINS:
        allowed.update(o.strip().rstrip("/") for o in settings.CORS_ORIGINS.split(",") if o.strip())
    return origin.rstrip("/") in allowed or bool(PREVIEW_ORIGIN_RE.match(origin))


def validate_origin(method: str, origin: Optional[str], referer: Optional[str]) -> bool:
    """True if a request with these headers may proceed."""
    if method.upper() in SAFE_METHODS:
        return True

    if origin:
        return is_allowed_origin(origin)

    if referer:
        referer_origin = _origin_from_referer(referer)
        return bool(referer_origin) and is_allowed_origin(referer_origin)

    return False


class OriginValidationMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next):
        if not settings.CSRF_PROTECTION_ENABLED or request.url.path.startswith(EXEMPT_PREFIXES):
            return await call_next(request)

        origin = request.headers.get("origin")
        referer = request.headers.get("referer")
        if not validate_origin(request.method, origin, referer):
            logger.warning(
                "Rejected request with invalid origin",
                extra={"extra_fields": {"path": request.url.path, "origin": origin, "referer": referer}},
            )
            return JSONResponse(
                status_code=status.HTTP_403_FORBIDDEN,
                content={"detail": "Invalid origin", "error_code": ErrorCode.INVALID_ORIGIN.value},
            )

        return await call_next(request)
