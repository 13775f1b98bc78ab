import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from keygate.core.config import get_settings
from keygate.core.deps import authorize_admin_request
from keygate.core.errors import KeyGateError, StoreUnavailable, Unauthorized
from keygate.db.base import Base
from keygate.db.session import engine
from keygate.routers.admin import router as admin_router
from keygate.routers.health import router as health_router
from keygate.routers.redeem import router as redeem_router
import keygate.models  # noqa: F401  (registers tables on Base.metadata)

settings = get_settings()

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ADMIN_PATH_PREFIX = "/api/keys"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.AUTO_CREATE_TABLES:
        Base.metadata.create_all(bind=engine)
    logger.info(f"{settings.APP_NAME} started")
    yield


app = FastAPI(
    title=settings.APP_NAME,
    description="Issues device-bound access keys and gates protected payloads behind key redemption.",
    version="0.1.0",
    debug=settings.DEBUG,
    lifespan=lifespan,
)


@app.exception_handler(KeyGateError)
async def keygate_exception_handler(request: Request, exc: KeyGateError):
    """Map the key error taxonomy to structured JSON responses."""
    headers = {"Retry-After": "5"} if isinstance(exc, StoreUnavailable) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Admin requests are authorized before their input is judged.

    FastAPI decodes the body before running route dependencies, so a malformed
    body would otherwise reveal parser details to a caller without credentials.
    """
    if request.url.path.startswith(ADMIN_PATH_PREFIX):
        try:
            authorize_admin_request(request)
        except Unauthorized as denied:
            return await keygate_exception_handler(request, denied)
    return await request_validation_exception_handler(request, exc)


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )


# Include routers
app.include_router(health_router)
app.include_router(admin_router, prefix="/api")
app.include_router(redeem_router)


@app.get("/")
def read_root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "docs": "/docs",
        "health": "/health"
    }
