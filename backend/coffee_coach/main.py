"""FastAPI application entrypoint for the coffee coach relay."""

from __future__ import annotations

import logging

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coffee_coach.api.routes import api_router
from coffee_coach.config import Settings, get_settings
from coffee_coach.errors import RelayError
from coffee_coach.services.heygen_client import HeyGenClient
from coffee_coach.services.session_registry import SessionRegistry
from coffee_coach.services.session_relay import SessionRelay

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    relay: SessionRelay | None = None,
) -> FastAPI:
    """Build the relay application.

    ``relay`` may be supplied to swap in a different provider or registry;
    by default one is built from ``settings`` around a ``HeyGenClient``.
    """
    settings = settings or get_settings()
    if relay is None:
        provider = HeyGenClient(
            api_key=settings.heygen_api_key,
            base_url=settings.heygen_base,
            timeout=settings.heygen_timeout,
        )
        relay = SessionRelay.from_settings(settings, provider, SessionRegistry())

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url=None,
    )
    app.state.settings = settings
    app.state.relay = relay

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("Malformed body for %s: %s", request.url.path, exc.errors())
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Malformed request body"},
        )

    app.include_router(api_router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Simple health probe."""
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Serve the relay with uvicorn using the configured host and port."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    if not settings.provider_configured:
        logger.error("HEYGEN_API_KEY is not set; refusing to start the relay")
        raise SystemExit(1)
    logger.info("Coffee coach relay listening on http://%s:%s", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
