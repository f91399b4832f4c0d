"""Ordering FastAPI application.

Web server that processes commands synchronously via HTTP. Every request
runs inside the ordering domain context.

Usage:
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the Protean config overlay; ORDERING_* variables
# carry the ordering settings (see ordering.config).
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ordering.config import get_settings
from ordering.domain import ordering
from ordering.utils.logging import configure_logging

settings = get_settings()
configure_logging(level=settings.log_level, json_output=settings.log_json)

ordering.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Ordering API",
    description="Retail ordering: carts, checkout, payments and order tracking",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context for each request."""
    with ordering.domain_context():
        response = await call_next(request)
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from ordering.api import (  # noqa: E402
    cart_router,
    maintenance_router,
    order_router,
    register_error_handlers,
    webhook_router,
)

app.include_router(cart_router)
app.include_router(order_router)
app.include_router(webhook_router)
app.include_router(maintenance_router)
register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domain": {"name": ordering.name},
            "payment_timeout_minutes": settings.payment_timeout_minutes,
        }
    )
