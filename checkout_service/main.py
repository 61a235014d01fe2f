"""
Checkout Service Application

Checkout sessions, payments and order history for the shop app.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv

from . import __version__
from .core.config import settings
from .errors import (
    OrderNotFoundError,
    OrderPersistenceError,
    PaymentGatewayError,
    SessionNotFoundError,
)
from .routes import checkout_router, orders_router
from .routes import dependencies

# Load environment variables
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "config", ".env"))

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("Checkout Service starting up...")
    logger.info(f"Payment mode: {settings.payment_mode.value}")
    logger.info(f"Order storage: {settings.orders_storage_dir}")

    yield

    logger.info("Checkout Service shutting down...")
    if dependencies.payment_gateway:
        await dependencies.payment_gateway.close()


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Checkout workflow, payments and order history",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, restrict this
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(checkout_router)
app.include_router(orders_router)


@app.exception_handler(OrderNotFoundError)
@app.exception_handler(SessionNotFoundError)
async def not_found_handler(request: Request, exc: Exception):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(OrderPersistenceError)
async def persistence_error_handler(request: Request, exc: OrderPersistenceError):
    logger.error(f"Order storage error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Order storage is unavailable", "retryable": True},
    )


@app.exception_handler(PaymentGatewayError)
async def gateway_error_handler(request: Request, exc: PaymentGatewayError):
    logger.error(f"Payment gateway error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": "Payment gateway error", "retryable": exc.retryable},
    )


@app.get("/")
async def home():
    """Service index"""
    return {
        "message": "Checkout Service API",
        "docs": "/docs",
        "endpoints": {
            "checkout": "/api/checkout/sessions",
            "orders": "/api/orders/{user_id}",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "checkout-service",
        "payment_mode": settings.payment_mode.value,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "checkout_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
