"""Origin guard for the local API.

Requests carrying an Origin outside the configured list are refused before
they reach a route. Requests without an Origin header (the CLI, curl) pass.
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class OriginGuardMiddleware(BaseHTTPMiddleware):
    """Reject requests whose Origin is not in ``allowed_origins``."""

    def __init__(self, app, allowed_origins: list):
        super().__init__(app)
        self.allowed_origins = set(allowed_origins)

    async def dispatch(self, request: Request, call_next):
        origin = request.headers.get("origin")
        if origin is not None and origin not in self.allowed_origins:
            logger.warning(f"[API] Rejected {request.method} {request.url.path} from origin {origin}")
            return JSONResponse(
                {
                    "success": False,
                    "error": "forbidden_origin",
                    "error_description": f"Origin {origin} is not allowed",
                },
                status_code=403,
            )
        return await call_next(request)
