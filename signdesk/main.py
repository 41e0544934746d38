# signdesk/main.py
from __future__ import annotations

import json
from typing import Iterable, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from signdesk.api import routers
from signdesk.api.deps import get_db
from signdesk.core.config import Settings, get_settings
from signdesk.core.errors import SigningAppError
from signdesk.core.logging import configure_logging
from signdesk.services.signing_pipeline import SigningPipeline
from signdesk.storage.local import LocalStorage
from signdesk.storage.registry import ensure_schema, get_engine, ping, session_factory

GENERIC_ERROR = "Error signing document"


def _as_list(val: Iterable | str | None, fallback: list[str]) -> list[str]:
    if val is None:
        return fallback
    if isinstance(val, (list, tuple, set)):
        return [str(x).strip() for x in val if str(x).strip()] or fallback
    s = str(val).strip()
    if not s:
        return fallback
    # "a,b,c" or a JSON list such as '["a","b"]'
    if s.startswith("["):
        try:
            parsed = json.loads(s)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            return [str(x).strip() for x in parsed if str(x).strip()]
    return [x.strip() for x in s.split(",") if x.strip()]


def create_app(
    settings: Optional[Settings] = None,
    pipeline: Optional[SigningPipeline] = None,
) -> FastAPI:
    """Build the service. Run with ``uvicorn signdesk.main:create_app --factory``."""
    settings = settings or get_settings()
    logger = configure_logging(settings)

    app = FastAPI(title=settings.app_name, version=settings.app_version)

    # === state: configuration is read once here, never mid-request ===
    app.state.settings = settings
    app.state.storage = LocalStorage(settings)
    app.state.pipeline = pipeline or SigningPipeline(settings.signing_config())
    app.state.session_factory = session_factory(settings.database_url)
    ensure_schema(get_engine(settings.database_url))

    # === CORS ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_as_list(settings.allow_origins, fallback=["*"]),
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Signing-Outcome"],
    )

    # === Errors: every failure ends at the request boundary ===
    @app.exception_handler(SigningAppError)
    async def signing_error_handler(request: Request, exc: SigningAppError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error on %s %s", request.method, request.url.path)
        message = GENERIC_ERROR if settings.is_production else f"{GENERIC_ERROR}: {exc}"
        return JSONResponse(status_code=500, content={"error": message})

    # === Routers ===
    for router in routers:
        app.include_router(router)

    # === Static uploads ===
    app.mount("/uploads", StaticFiles(directory=str(settings.public_uploads_dir)), name="uploads")

    # === Basic endpoints ===
    @app.get("/")
    async def root() -> dict:
        return {"message": "Signature backend is running"}

    @app.get("/health")
    async def health_check() -> dict:
        return {"ok": True}

    @app.get("/health/db")
    def health_db(db: Session = Depends(get_db)) -> JSONResponse:
        try:
            ping(db)
        except SQLAlchemyError as exc:
            logger.warning("Database health check failed: %s", exc)
            return JSONResponse(status_code=500, content={"db": "error", "message": str(exc)})
        return JSONResponse(content={"db": "ok"})

    logger.info("Uploads dir: %s", settings.upload_dir)
    logger.info("Direct signing template: %s", "copy" if not settings.sign_command_template else "configured")
    return app
