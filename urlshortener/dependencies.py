"""FastAPI dependencies exposing the per-process engine and settings.

The engine is created once in the application lifespan and stored on
``app.state``; these dependencies only hand it out. Tests replace them through
``app.dependency_overrides``.
"""

import logging

from fastapi import Request

from urlshortener.config import Settings
from urlshortener.engine import ShortenerEngine
from urlshortener.logging_config import LOGGER_NAME

__all__ = ["get_engine", "get_app_settings", "get_logger"]


def get_engine(request: Request) -> ShortenerEngine:
    return request.app.state.engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_logger() -> logging.Logger:
    return logging.getLogger(LOGGER_NAME)
