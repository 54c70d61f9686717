import json
import time
from typing import Callable

import jwt
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ledger.config import settings
from ledger.core.exceptions import (
    LedgerError,
    RateLimitError,
    RateLimitServiceError,
    error_response,
)
from ledger.core.logging import api_logger, app_logger
from ledger.core.security import decode_session_token


def get_client_ip(
    request: Request, trust_proxy_headers: bool = False
) -> str | None:
    """
    Best-effort client address.

    X-Forwarded-For / X-Real-IP are only consulted when ``trust_proxy_headers``
    is set, since clients can forge them.
    """
    client_ip = ""
    if trust_proxy_headers:
        client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
        if not client_ip:
            client_ip = request.headers.get("X-Real-IP", "")
    if not client_ip and request.client:
        client_ip = request.client.host
    return client_ip or None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all API requests with details including path, parameters,
    timestamp, status code, and response time.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in settings.LOG_EXCLUDED_PATHS:
            return await call_next(request)

        start_time = time.time()

        method = request.method
        path = request.url.path
        query_params = dict(request.query_params) if request.query_params else {}
        client_ip = get_client_ip(request, settings.TRUST_PROXY_HEADERS)
        user_agent = request.headers.get("User-Agent", "Unknown")

        try:
            response = await call_next(request)
        except Exception as e:
            api_logger.error(
                f"{method} {path} - Status: 500 - IP: {client_ip} - "
                f"Query: {json.dumps(query_params)} - Error: {str(e)}"
            )
            raise

        duration_ms = int((time.time() - start_time) * 1000)

        # Subject is injected by SessionMiddleware further down the stack
        subject = getattr(request.state, "subject", None)

        # Log the request (without body data)
        api_logger.info(
            f"{method} {path} - Status: {response.status_code} - "
            f"IP: {client_ip} - Subject: {subject or 'Anonymous'} - "
            f"UserAgent: {user_agent} - Query: {json.dumps(query_params)} - "
            f"Duration: {duration_ms}ms"
        )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Admission check in front of every route.

    The limiter is read from ``app.state.rate_limiter`` so tests and
    deployments can swap it. Counter failures reject the request (fail-closed).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        limiter = request.app.state.rate_limiter
        identifier = (
            get_client_ip(request, settings.TRUST_PROXY_HEADERS)
            or settings.RATE_LIMIT_FALLBACK_IDENTIFIER
        )

        try:
            result = await limiter.check(identifier)
        except RateLimitServiceError as e:
            app_logger.error(f"Rate limiter error for {identifier}: {e.message}")
            return error_response(LedgerError())

        if not result.allowed:
            app_logger.warning(f"Rate limit exceeded for {identifier}")
            return error_response(
                RateLimitError(),
                headers={
                    "Retry-After": str(result.reset_seconds),
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Decode the identity provider's bearer token into ``request.state.subject``.

    Invalid, expired or missing tokens leave the subject as None; route
    dependencies decide whether that is acceptable. Does nothing unless
    AUTH_ENABLED is set.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request.state.subject = None

        if not settings.AUTH_ENABLED:
            return await call_next(request)

        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header.removeprefix("Bearer ").strip()
            try:
                payload = decode_session_token(token)
            except jwt.InvalidTokenError as e:
                app_logger.debug(f"Rejected session token: {e}")
            else:
                request.state.subject = payload.get("sub")

        return await call_next(request)
