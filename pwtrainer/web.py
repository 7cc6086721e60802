"""FastAPI application for the Password Trainer check endpoint."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.status import (
    HTTP_200_OK,
    HTTP_400_BAD_REQUEST,
    HTTP_429_TOO_MANY_REQUESTS,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from pwtrainer.errors import StartupValidationError
from pwtrainer.rate_limit import UNKNOWN_CLIENT, FixedWindowRateLimiter
from pwtrainer.settings import Settings, ensure_valid
from pwtrainer.store import SecretMaterial, load_secret_material
from pwtrainer.verifier import CheckOutcome, CheckRequest, CredentialVerifier


INVALID_CREDENTIALS_MESSAGE = "Invalid credentials"
SERVER_ERROR_MESSAGE = "Server error"
HEALTHY_MESSAGE = "Healthy"

LOGGER = logging.getLogger(__name__)
router = APIRouter()


def _get_client_ip(request: Request) -> str:
    # Forwarded headers are applied by uvicorn, and only for trusted proxies.
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def _enforce_rate_limit(request: Request) -> None:
    limiter: FixedWindowRateLimiter = request.app.state.rate_limiter
    if not limiter.try_acquire(_get_client_ip(request)):
        raise HTTPException(status_code=HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests")


def _format_validation_errors(exc: RequestValidationError) -> list[str]:
    messages = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        field_name = ".".join(location) or "body"
        messages.append(f"{field_name}: {error.get('msg', 'Invalid value')}")
    return messages


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=_format_validation_errors(exc))


@router.get("/healthz", response_class=PlainTextResponse)
async def healthz() -> PlainTextResponse:
    return PlainTextResponse(HEALTHY_MESSAGE)


@router.post("/check", dependencies=[Depends(_enforce_rate_limit)])
async def check(request: Request, payload: CheckRequest) -> Response:
    verifier: CredentialVerifier = request.app.state.verifier
    settings: Settings = request.app.state.settings
    try:
        outcome = await verifier.check(payload, timeout=settings.check_timeout_seconds)
    except asyncio.TimeoutError:
        LOGGER.error("Credential check exceeded %ss deadline", settings.check_timeout_seconds)
        outcome = CheckOutcome.SERVER_ERROR

    if outcome is CheckOutcome.ACCEPTED:
        return Response(status_code=HTTP_200_OK)
    if outcome is CheckOutcome.SERVER_ERROR:
        return JSONResponse(status_code=HTTP_500_INTERNAL_SERVER_ERROR, content=SERVER_ERROR_MESSAGE)
    return JSONResponse(status_code=HTTP_400_BAD_REQUEST, content=INVALID_CREDENTIALS_MESSAGE)


def _load_material(settings: Settings) -> SecretMaterial:
    result = load_secret_material(settings)
    if result.material is None:
        message = result.error.value if result.error else "Secret material unavailable"
        raise StartupValidationError([message])
    return result.material


def create_app(
    settings: Settings,
    material: SecretMaterial | None = None,
    verifier: CredentialVerifier | None = None,
) -> FastAPI:
    """Build the application, refusing to do so when secrets are missing."""
    ensure_valid(settings, serving=True)
    if verifier is None:
        verifier = CredentialVerifier(settings, material or _load_material(settings))

    app = FastAPI(title="Password Trainer", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.verifier = verifier
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.rate_limit_permit_limit,
        timedelta(minutes=settings.rate_limit_window_minutes),
    )
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.include_router(router)
    if settings.path_base and settings.path_base.rstrip("/"):
        app.include_router(router, prefix=settings.path_base.rstrip("/"))
    LOGGER.info(
        "Serving checks (permit_limit=%s, window=%s min, path_base=%s)",
        settings.rate_limit_permit_limit,
        settings.rate_limit_window_minutes,
        settings.path_base or "/",
    )
    return app
