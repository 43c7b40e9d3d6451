"""Middleware registration."""

from fastapi import FastAPI

from homebase.config import Settings
from homebase.middleware.cors import setup_cors
from homebase.middleware.error_handler import setup_error_handlers
from homebase.middleware.logging import setup_logging
from homebase.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register middleware. Starlette runs them in reverse-add order, so CORS goes last."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
