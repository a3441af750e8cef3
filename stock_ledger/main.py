import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status

from stock_ledger.api.v1.fulfillment import router as fulfillment_router
from stock_ledger.api.v1.inventory import router as inventory_router
from stock_ledger.core.config import LOG_LEVEL, PROJECT_NAME, VERSION
from stock_ledger.core.db import close_db, init_db
from stock_ledger.core.exception_handlers import setup_exception_handlers

logging.basicConfig(level=LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    log.info(f"Starting {PROJECT_NAME} v{VERSION}...")
    await init_db() # Connect to DB and generate schemas
    yield
    await close_db()
    log.info(f"{PROJECT_NAME} stopped.")

app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.include_router(
    inventory_router, prefix="/api/v1/stores/{store_id}/inventory", tags=["Inventory Management"]
)
app.include_router(
    fulfillment_router,
    prefix="/api/v1/stores/{store_id}/orders/{order_id}/inventory",
    tags=["Order Fulfillment"],
)

setup_exception_handlers(app)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
