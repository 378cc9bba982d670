"""Middleware registration."""

from fastapi import FastAPI

from uticoins.config import Settings
from uticoins.middleware.cors import setup_cors
from uticoins.middleware.error_handler import setup_error_handlers
from uticoins.middleware.logging import setup_logging
from uticoins.middleware.rate_limit import RateLimitMiddleware
from uticoins.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and middleware.

    Starlette runs middleware in reverse-add order, so CORS is added last to
    wrap 429 responses from the rate limiter.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        claim_requests_per_window=settings.rate_limit_claims,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
