import logging
import sys
from contextlib import asynccontextmanager
from fastapi import FastAPI

from order_engine.config import settings
from order_engine.database import create_tables, engine
from order_engine.presentation.api import router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle"""
    if settings.CREATE_TABLES_ON_STARTUP:
        await create_tables()
        logger.info("Tables ensured")

    yield

    logger.info("Application shutting down...")
    await engine.dispose()


app = FastAPI(
    title="Order Engine",
    description="Orders with consistent inventory: checkout, status lifecycle, cancellation",
    version="1.0.0",
    lifespan=lifespan
)

app.include_router(router, prefix="/api")


@app.get("/")
async def root():
    return {"message": "Order Engine is running"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
