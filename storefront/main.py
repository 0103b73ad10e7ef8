# storefront/main.py
from contextlib import asynccontextmanager

import redis
import uvicorn
from fastapi import FastAPI

from storefront.api import create_app
from storefront.data.database import Base, engine
from storefront.services.payment_gateway import StripeGateway
from storefront.utils.settings import REDIS_URL
from storefront.utils.logging import get_logger

# register every model in Base.metadata before create_all
import storefront.data.models  # noqa: F401

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Creating tables: {sorted(Base.metadata.tables.keys())}")
    Base.metadata.create_all(bind=engine)

    app.state.redis = redis.Redis.from_url(REDIS_URL, decode_responses=True)
    app.state.gateway = StripeGateway()
    logger.info("Storefront started")
    try:
        yield
    finally:
        app.state.redis.close()
        logger.info("Storefront stopped")


app = create_app(lifespan=lifespan)

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
