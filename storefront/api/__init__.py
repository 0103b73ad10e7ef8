# storefront/api/__init__.py
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront.api.routers import carts, checkout, health, orders
from storefront.domain.errors import AppError, http_status_for
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    status = http_status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind.value}: {exc.message}")
    return JSONResponse(status_code=status, content=exc.to_dict())


def create_app(lifespan=None) -> FastAPI:
    app = FastAPI(title="Storefront", version="1.0.0", lifespan=lifespan)
    app.add_exception_handler(AppError, app_error_handler)

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(checkout.router)
    app.include_router(orders.router)
    return app
