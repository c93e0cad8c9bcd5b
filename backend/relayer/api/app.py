from __future__ import annotations

import asyncio
import contextlib
from typing import List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relayer.api.http.http_api import router as http_router
from relayer.configuration.config import settings
from relayer.core.errors import RelayerError, ValidationError
from relayer.core.sponsorship.orchestrator import SponsorshipOrchestrator, build_default_orchestrator
from relayer.logging.logger import get_logger

log = get_logger(__name__)


def _parse_allowed_origins(env_value: str) -> List[str]:
    """Parse a comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in env_value.split(",") if origin.strip()]


def _error_response(error: RelayerError) -> JSONResponse:
    return JSONResponse(status_code=error.http_status, content={"error": error.to_payload()})


def create_app(orchestrator: Optional[SponsorshipOrchestrator] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        orchestrator: pre-built orchestrator; when omitted one is wired from settings at startup.

    Returns:
        FastAPI: Configured relayer API application.
    """
    app = FastAPI(title="Gas Sponsorship Relayer")
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_parse_allowed_origins(settings.CORS_ORIGINS),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayerError)
    async def on_relayer_error(_: Request, exc: RelayerError) -> JSONResponse:
        if exc.http_status >= 500:
            log.warning("[HTTP][ERROR] %s: %s", exc.reason, exc.message)
        else:
            log.info("[HTTP][REJECT] %s: %s", exc.reason, exc.message)
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def on_request_validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        fields = [".".join(str(part) for part in err.get("loc", ())[1:]) for err in exc.errors()]
        return _error_response(ValidationError("Malformed request body", fields=fields))

    @app.exception_handler(Exception)
    async def on_unexpected_error(_: Request, exc: Exception) -> JSONResponse:
        log.exception("[HTTP][UNEXPECTED] %s", exc)
        return _error_response(RelayerError("Internal error"))

    @app.on_event("startup")
    async def on_startup() -> None:
        """Wire the sponsorship components unless an orchestrator was injected."""
        if app.state.orchestrator is None:
            app.state.orchestrator = build_default_orchestrator()
        app.state.reconciler = asyncio.create_task(
            app.state.orchestrator.reconcile_forever(settings.PENDING_RECONCILE_INTERVAL_SECONDS)
        )
        log.info("Relayer startup: sponsor=%s", app.state.orchestrator.sponsor_address)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        """Stop pending reconciliation, then close RPC and HTTP clients."""
        reconciler = getattr(app.state, "reconciler", None)
        if reconciler is not None:
            reconciler.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reconciler
        if app.state.orchestrator is not None:
            await app.state.orchestrator.close()

    app.include_router(http_router)

    return app
