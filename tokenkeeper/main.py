"""Token Keeper web application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tokenkeeper.core.config import settings
from tokenkeeper.core.database import create_db_and_tables, engine
from tokenkeeper.core.errors import (
    ExchangeFailed,
    Invalidated,
    NotFound,
    OwnershipMismatch,
    RefreshRejected,
    StoreError,
    VerificationFailed,
)
from tokenkeeper.core.scheduler import ExpiryReaper
from tokenkeeper.routes import auth, credentials
from tokenkeeper.routes.dependencies import close_provider
from tokenkeeper.store import CredentialStore

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    filename=settings.log_file or None,
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    # Startup
    logger.info("Starting Token Keeper")
    create_db_and_tables()
    app.state.reaper = ExpiryReaper(
        CredentialStore(engine), interval_minutes=settings.reaper_interval_minutes
    )
    app.state.reaper.start()
    yield
    # Shutdown
    app.state.reaper.stop()
    close_provider()
    logger.info("Token Keeper shut down")


app = FastAPI(
    title=settings.app_name,
    description="Issues, correlates and renews OAuth2 tokens for external accounts",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(auth.router)
app.include_router(credentials.router)

_ERROR_STATUS = {
    NotFound: 404,
    OwnershipMismatch: 403,
    Invalidated: 409,
    ExchangeFailed: 502,
    VerificationFailed: 502,
    RefreshRejected: 502,
    StoreError: 503,
    ValueError: 400,
}


def _error_response(request: Request, exc: Exception) -> JSONResponse:
    status = next(code for cls, code in _ERROR_STATUS.items() if isinstance(exc, cls))
    return JSONResponse(
        status_code=status,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


for _error in _ERROR_STATUS:
    app.add_exception_handler(_error, _error_response)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}
