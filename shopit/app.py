"""
FastAPI application entry point for the catalog backend.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from shopit.config import Settings, get_settings
from shopit.dependencies import Resources, build_resources
from shopit.errors import ShopError
from shopit.reconcile import run_sweep
from shopit.routes import router

logger = logging.getLogger(__name__)


def _sweep_on_startup(resources: Resources) -> None:
    try:
        run_sweep(
            resources.catalog, resources.media, resources.settings.media_folder
        )
    except ShopError as exc:
        logger.warning("Startup orphan cleanup failed: %s", exc.message)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShopError)
    async def handle_shop_error(request: Request, exc: ShopError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.as_payload())

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Invalid request.", "fields": fields},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "An unexpected error occurred"},
        )


def create_app(
    settings: Optional[Settings] = None, resources: Optional[Resources] = None
) -> FastAPI:
    settings = settings or (resources.settings if resources else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "resources", None) is None
        if owned:
            app.state.resources = build_resources(settings)
        if settings.sweep_on_startup:
            _sweep_on_startup(app.state.resources)
        try:
            yield
        finally:
            if owned:
                app.state.resources.close()
                app.state.resources = None

    app = FastAPI(title="Shop Catalog Backend", version="0.1.0", lifespan=lifespan)
    app.state.resources = resources
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    register_error_handlers(app)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()


def main() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
