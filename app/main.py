"""
FastAPI application factory
"""
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from app.config import get_settings
from app.infrastructure.db.session import check_db_connection
from app.api.v1 import backup, customers, entries, quotes, receivables, sales, subscriptions
from app.application.backup import BackupValidationError
from app.application.customers import CustomerNotFoundError, CustomerValidationError
from app.application.ledger import EntryNotFoundError, LedgerValidationError
from app.application.obligations import ObligationValidationError, SaleNotFoundForObligationsError
from app.application.quotes import QuoteNotFoundError, QuoteValidationError
from app.application.sales import SaleNotFoundError, SaleValidationError
from app.application.subscriptions import SubscriptionNotFoundError, SubscriptionValidationError
from app.domain.installments import InstallmentPlanError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

VALIDATION_ERRORS = (
    BackupValidationError,
    CustomerValidationError,
    InstallmentPlanError,
    LedgerValidationError,
    ObligationValidationError,
    QuoteValidationError,
    SaleValidationError,
    SubscriptionValidationError,
)

NOT_FOUND_ERRORS = (
    CustomerNotFoundError,
    EntryNotFoundError,
    QuoteNotFoundError,
    SaleNotFoundError,
    SaleNotFoundForObligationsError,
    SubscriptionNotFoundError,
)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every unhandled exception, sync routes included."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error(f"\n{'='*60}\nERROR on {request.method} {request.url.path}\n{tb_str}{'='*60}")
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


async def domain_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    status_code = 404 if isinstance(exc, NOT_FOUND_ERRORS) else 400
    logger.info("%s %s -> %d: %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """
    Application factory - builds and configures the FastAPI app

    Returns:
        Configured FastAPI app
    """
    settings = get_settings()

    app = FastAPI(
        title="BizLedger",
        debug=settings.DEBUG,
    )

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    for exc_class in VALIDATION_ERRORS:
        app.add_exception_handler(exc_class, domain_error_handler)

    # Routers
    app.include_router(customers.router)
    app.include_router(sales.router)
    app.include_router(quotes.router)
    app.include_router(entries.router)
    app.include_router(subscriptions.router)
    app.include_router(receivables.router)
    app.include_router(backup.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (checks the database)"""
        check_db_connection()
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
