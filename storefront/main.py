# storefront/main.py
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from http import HTTPStatus

import stripe
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routers import carts, orders, payments, health
from storefront.data.database import Base, engine
from storefront.domain.errors import StorefrontError
from storefront.services.event_publisher import get_event_publisher
from storefront.utils.logging import get_logger

# import wszystkich modeli przed create_all
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


def init_db() -> None:
    logger.info(f"Creating tables: {list(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=engine)


def error_body(status: int, message: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
        "error": HTTPStatus(status).phrase,
        "message": message,
    }


async def storefront_error_handler(request: Request, exc: StorefrontError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, exc.message))


async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content=error_body(400, str(exc)))


async def stripe_error_handler(request: Request, exc: stripe.StripeError):
    logger.error(f"Payment provider error on {request.url.path}: {exc}")
    return JSONResponse(status_code=502, content=error_body(502, "Payment provider error"))


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=error_body(500, "An unexpected error occurred"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    get_event_publisher().close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Checkout Service",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)
    app.add_exception_handler(stripe.StripeError, stripe_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
