from __future__ import annotations

from fastapi import FastAPI

from sessionkit.api.error_handling import register_exception_handlers
from sessionkit.api.routes import router
from sessionkit.logging import get_logger, set_correlation_id

logger = get_logger(__name__)

__version__ = "0.1.0"


def create_app() -> FastAPI:
    application = FastAPI(title="sessionkit", version=__version__)
    register_exception_handlers(application)
    application.include_router(router)

    @application.middleware("http")
    async def add_correlation_id(request, call_next):
        """Tag logs with X-Request-ID (or a fresh UUID) and echo it back."""
        correlation_id = set_correlation_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = correlation_id
        return response

    @application.middleware("http")
    async def add_security_headers(request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        if request.url.path.startswith("/v1/"):
            response.headers.setdefault(
                "Cache-Control", "no-store, no-cache, must-revalidate, private"
            )
        return response

    @application.get("/healthz")
    async def healthz():
        return {"status": "ok"}

    return application


app = create_app()
