"""CORS for the four portal frontends."""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from homebase.config import Settings


def setup_cors(app: FastAPI, settings: Settings) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id", "apikey"],
        expose_headers=["X-Request-Id"],
    )
