# roomchat/core/middleware.py
"""HTTP middleware: request context, bearer token extraction and rate limiting."""
import logging
import time
from datetime import datetime, timezone

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from .exceptions import RateLimitExceeded
from .rate_limiter import get_rest_rate_limit_config
from .responses import error_response, generate_request_id
from .security import extract_bearer_token

logger = logging.getLogger(__name__)


async def request_context_middleware(request: Request, call_next):
    """Assign a request id and log method, path, status and timing"""
    request.state.request_id = request.headers.get("X-Request-ID") or generate_request_id()
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Request-ID"] = request.state.request_id
    response.headers["X-Process-Time"] = f"{process_time:.4f}"
    logger.info(
        f"{request.method} {request.url.path} {response.status_code} - {process_time:.3f}s "
        f"[{request.state.request_id}]"
    )
    return response


class TokenExtractionMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token if present; anonymous requests pass through with user None."""

    async def dispatch(self, request: Request, call_next):
        request.state.user = None
        token = extract_bearer_token(request.headers.get("Authorization"))
        if token:
            request.state.user = await request.app.state.authenticator.authenticate(token)
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        config = get_rest_rate_limit_config(request.method, request.url.path)
        if config is None:
            return await call_next(request)

        user = getattr(request.state, "user", None)
        if user:
            identifier = user.id
        else:
            identifier = request.client.host if request.client else "unknown"

        try:
            result = await request.app.state.rate_limiter.check_rate_limit(identifier, config)
        except Exception as e:
            logger.error(f"Rate limit middleware failed for {identifier}, allowing request: {e}")
            return await call_next(request)

        headers = {
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": datetime.fromtimestamp(result.reset_time / 1000, tz=timezone.utc).isoformat(),
        }

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {identifier} on {request.method} {request.url.path}")
            exc = RateLimitExceeded(config.max_requests, config.window_seconds, result.retry_after)
            return error_response(
                request,
                status_code=exc.status_code,
                message=exc.detail,
                code=exc.code,
                details=exc.details,
                headers={**headers, **exc.headers},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
