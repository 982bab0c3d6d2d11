"""
Learning API - FastAPI Application

Usage:
    uvicorn coach.api.app:app --host 127.0.0.1 --port 8090
"""

from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from coach.api.models import ErrorResponse
from coach.api.routes import router
from coach.logging_config import bind_context, clear_context, get_logger, setup_logging
from coach.storage.errors import StorageError


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("learning_api_started")
    yield
    logger.info("learning_api_stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Coach Learning API",
        description="Consent-gated feedback recording and reward processing",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        clear_context()
        bind_context(method=request.method, path=request.url.path)
        try:
            return await call_next(request)
        finally:
            clear_context()

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=str(exc.detail), code=f"HTTP_{exc.status_code}").model_dump(),
        )

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("storage_error", operation=exc.operation, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=ErrorResponse(error="Storage unavailable", code="STORAGE_ERROR").model_dump(),
        )

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    app.include_router(router)
    return app


load_dotenv()
app = create_app()
