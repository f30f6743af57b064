from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from storefront_orders import __version__
from storefront_orders.api.router import api_router
from storefront_orders.core.config import get_settings
from storefront_orders.core.errors import (
    InsufficientStockError,
    InvalidCouponError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
    ReturnWindowExpiredError,
)
from storefront_orders.core.logging import configure_logging, get_logger
from storefront_orders.db.session import init_db

settings = get_settings()
logger = get_logger("http")


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    init_db()
    yield


def _register_error_handlers(application: FastAPI) -> None:
    @application.exception_handler(NotFoundError)
    async def not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @application.exception_handler(InvalidTransitionError)
    async def invalid_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": str(exc), "current": exc.current, "requested": exc.requested},
        )

    @application.exception_handler(InsufficientStockError)
    async def insufficient_stock(_: Request, exc: InsufficientStockError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"detail": "insufficient_stock", "errors": exc.errors},
        )

    @application.exception_handler(ReturnWindowExpiredError)
    async def return_window(_: Request, exc: ReturnWindowExpiredError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @application.exception_handler(InvalidCouponError)
    async def invalid_coupon(_: Request, exc: InvalidCouponError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @application.exception_handler(ValueError)
    async def bad_value(_: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})

    @application.exception_handler(PersistenceError)
    @application.exception_handler(SQLAlchemyError)
    async def storage_failure(request: Request, exc: Exception) -> JSONResponse:
        logger.error("storage failure", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "temporarily_unavailable"},
        )


def create_application() -> FastAPI:
    configure_logging(settings.log_level, settings.log_json)
    application = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)
    if settings.cors_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    @application.middleware("http")
    async def add_request_id(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        response = await call_next(request)
        logger.info(
            "request handled",
            extra={
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
            },
        )
        response.headers["X-Request-ID"] = request_id
        return response

    _register_error_handlers(application)
    application.include_router(api_router, prefix=settings.api_v1_prefix)
    return application


app = create_application()
