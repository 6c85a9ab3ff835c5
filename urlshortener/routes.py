"""FastAPI route definitions: a thin adapter over ``ShortenerEngine``.

API Endpoint Overview
=====================
::
    GET  /api/health
        └─ HealthResponse (200)

    POST /generate
        ├─ GenerateRequest (request body)
        └─ GenerateResponse (200) or 400/409/422/500

    GET  /{token}
        └─ 302 Redirect or 404

Error Mapping
=============
::
    EmptyURLError, InvalidCustomTokenError  → 400 (message)
    DuplicateCustomTokenError               → 409 (message)
    InternalError, BackendError             → 500 (generic message)
    resolve() found=False                   → 404

Key Behaviours
===============
- Routes never touch the store or cache directly.
- Backend details are logged but never returned to the client.
- Every GET path with a single segment belongs to ``/{token}``. Service
  endpoints (health, metrics, docs) live under ``SYSTEM_PREFIX`` so no token
  is shadowed. ``GET /generate`` still resolves, since ``/generate`` only
  answers POST.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse

from urlshortener.config import Settings
from urlshortener.dependencies import get_app_settings, get_engine, get_logger
from urlshortener.engine import ShortenerEngine
from urlshortener.enums import HealthStatus
from urlshortener.exceptions import DuplicateCustomTokenError, InvalidRequestError, ShortenerError
from urlshortener.schemas import ErrorResponse, GenerateRequest, GenerateResponse, HealthResponse

__all__ = ["router", "SYSTEM_PREFIX"]

router = APIRouter()

SERVER_ERROR_DETAIL = "Failed to process request, please retry later"
SYSTEM_PREFIX = "/api"


@router.get(f"{SYSTEM_PREFIX}/health", response_model=HealthResponse, tags=["health"])
async def health_check(engine: ShortenerEngine = Depends(get_engine)) -> HealthResponse:
    checks = await engine.health()
    db_status = HealthStatus.from_bool(checks["database"])
    cache_status = HealthStatus.from_bool(checks["cache"])
    status = HealthStatus.from_bool(checks["database"] and checks["cache"])
    return HealthResponse(status=status, database=db_status, cache=cache_status)


@router.post(
    "/generate",
    response_model=GenerateResponse,
    tags=["urls"],
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def generate_short_url(
    payload: GenerateRequest,
    engine: ShortenerEngine = Depends(get_engine),
    settings: Settings = Depends(get_app_settings),
    logger: logging.Logger = Depends(get_logger),
) -> GenerateResponse:
    try:
        token = await engine.generate(
            payload.original_url,
            custom_token=payload.custom_token,
            expires_at=payload.expires_at,
        )
    except DuplicateCustomTokenError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except InvalidRequestError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ShortenerError as exc:
        logger.error(f"Failed to generate short URL: {exc!r}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL) from exc

    return GenerateResponse(short_url=token, url=f"{settings.BASE_URL.rstrip('/')}/{token}")


@router.get("/{token}", tags=["redirect"], responses={404: {"model": ErrorResponse}})
async def resolve_short_url(
    token: str,
    engine: ShortenerEngine = Depends(get_engine),
    logger: logging.Logger = Depends(get_logger),
) -> RedirectResponse:
    try:
        original_url, found = await engine.resolve(token)
    except ShortenerError as exc:
        logger.error(f"Failed to resolve {token}: {exc!r}")
        raise HTTPException(status_code=500, detail=SERVER_ERROR_DETAIL) from exc

    if not found:
        raise HTTPException(status_code=404, detail="Short URL not found")

    return RedirectResponse(url=original_url, status_code=302)
