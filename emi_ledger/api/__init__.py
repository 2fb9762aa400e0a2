"""
EMI Ledger API Application Factory
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from .. import __version__
from ..config import get_config
from ..exceptions import (
    ConcurrentModificationError, LedgerCorruptionError, LoanEngineError,
    LoanNotFoundError, PaymentNotFoundError
)
from ..logging_config import get_logger, log_action, setup_logging
from .loans import router as loans_router


logger = get_logger(__name__)


def _status_for(error: LoanEngineError) -> int:
    if isinstance(error, (LoanNotFoundError, PaymentNotFoundError)):
        return 404
    if isinstance(error, ConcurrentModificationError):
        return 409
    if isinstance(error, LedgerCorruptionError):
        return 500
    return 400


async def loan_engine_error_handler(request: Request, exc: LoanEngineError) -> JSONResponse:
    """Map engine errors to status codes with the offending values in context"""
    status_code = _status_for(exc)
    log_action(logger, "error" if status_code >= 500 else "warning", exc.message,
               action=f"{request.method} {request.url.path}",
               extra={"error": type(exc).__name__, "status_code": status_code})
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "context": exc.details,
        }
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="EMI Ledger API",
        description="Personal loan tracker with EMI schedules and an event-sourced payment ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LoanEngineError, loan_engine_error_handler)

    # Include routers
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "emi_ledger_api",
            "version": __version__
        }

    return app


def run_server(host: str = None, port: int = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, config.log_format, config.log_file)

    uvicorn.run(
        "emi_ledger.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )
