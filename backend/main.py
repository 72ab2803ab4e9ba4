"""
Orders Service — FastAPI Application

Order creation against the product catalog, paginated listing, status
transitions, payment sessions and paid-order finalization.
"""
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from routes import health, orders, webhooks

# ── Logging ─────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ── Lifespan ────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: open DB and remote clients, start listener. Shutdown: reverse order."""
    from database import database
    from services import payment_listener
    from services.order_service import OrderService
    from services.payment_client import RpcPaymentGateway
    from services.product_client import RpcProductValidator
    from services.rpc_client import RpcClient

    settings.validate_production_settings()

    if database.url.startswith("sqlite+aiosqlite:///./"):
        # Ensure data/ directory exists for SQLite
        os.makedirs(os.path.dirname(database.url.split(":///", 1)[1]) or ".", exist_ok=True)

    await database.open()
    logger.info("Database initialized")

    products_rpc = RpcClient(
        settings.products_service_url,
        service_name="products",
        timeout=settings.rpc_timeout_seconds,
        max_retries=settings.rpc_max_retries,
        backoff_seconds=settings.rpc_backoff_seconds,
    )
    payments_rpc = RpcClient(
        settings.payments_service_url,
        service_name="payments",
        timeout=settings.rpc_timeout_seconds,
        max_retries=settings.rpc_max_retries,
        backoff_seconds=settings.rpc_backoff_seconds,
    )
    await products_rpc.open()
    await payments_rpc.open()

    order_service = OrderService(
        database,
        RpcProductValidator(products_rpc),
        RpcPaymentGateway(payments_rpc),
        currency=settings.payment_currency,
    )
    app.state.database = database
    app.state.order_service = order_service

    await payment_listener.start(order_service)

    yield  # app runs here

    await payment_listener.stop()
    await products_rpc.close()
    await payments_rpc.close()
    await database.close()

    logger.info("Shutting down")


# ── App Factory ─────────────────────────────────────────────────────

app = FastAPI(
    title="Orders Service API",
    description="Order lifecycle with catalog validation and payment sessions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routes ──────────────────────────────────────────────────────────

app.include_router(health.router)
app.include_router(orders.router)
app.include_router(webhooks.router)


# ── Exception Handler ───────────────────────────────────────────────


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """
    Catch-all for unhandled exceptions.

    Never return raw exception details to clients.
    The full traceback is logged server-side for debugging.
    """
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {
                "code": "internal_server_error",
                "message": "Internal server error",
            },
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """
    Standardize HTTPException responses for frontend consumers.

    Keeps the original HTTP status code, but wraps the payload.
    """
    from domain.errors import DomainError
    from domain.responses import error_response

    if isinstance(exc, DomainError):
        # DomainError with structured error info
        error_code = exc.__class__.__name__.replace("Error", "").lower()
        if exc.cause is not None:
            logger.warning(
                f"{exc.__class__.__name__} on {request.url.path}: {exc.message} "
                f"(cause: {exc.cause!r})"
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(error_code, exc.message, exc.details),
        )

    # Regular HTTPException
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(
            "http_error", message, detail if not isinstance(detail, str) else None
        ),
    )


# ── Entrypoint ──────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    port = int(os.environ.get("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="info")
