import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.responses import Response

from invoice_co2.api.v1.router import router
from invoice_co2.core.config import get_settings
from invoice_co2.core.logging import configure_logging
from invoice_co2.services.pipeline import build_pipeline
from invoice_co2.services.repository import InMemoryInvoiceRepository
from invoice_co2.services.storage import UploadStore

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncGenerator[None, None]:
    application.state.pipeline_ready = False
    settings = get_settings()
    configure_logging(settings.log_level)
    try:
        repository = InMemoryInvoiceRepository()
        store = UploadStore(settings.upload_dir)
        application.state.repository = repository
        application.state.store = store
        application.state.pipeline = build_pipeline(settings, repository, store)
        application.state.pipeline_ready = True
    except Exception:
        logger.exception("Failed to build invoice pipeline during startup")
        raise
    yield


app = FastAPI(title="Invoice CO2", lifespan=lifespan)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "message": message}, status_code=status_code)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error(str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return _error(str(exc), 422)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error("Server error", 500)


@app.middleware("http")
async def require_pipeline_ready(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    if request.url.path.startswith("/api/") and not getattr(
        app.state, "pipeline_ready", False
    ):
        return _error("Service unavailable: pipeline is starting", 503)
    return await call_next(request)


app.include_router(router, prefix="/api/v1")


@app.get("/health")
async def health() -> JSONResponse:
    return JSONResponse(
        {"status": "ok", "pipeline_ready": getattr(app.state, "pipeline_ready", False)}
    )
