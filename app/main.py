# app/main.py
from contextlib import asynccontextmanager
import logging

from fastapi.middleware.cors import CORSMiddleware
from fastapi import FastAPI

from app.core.change_feed import get_change_feed
from app.core.config import get_settings
from app.core.exceptions import register_exception_handlers
from app.core.realtime import SupabaseRealtimeBridge
from app.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from app.models import user as _user_models  # noqa: F401
from app.models import catalog as _catalog_models  # noqa: F401
from app.models import order as _order_models  # noqa: F401


# Routers
from app.routers.users import router as users_router
from app.routers.catalog import router as catalog_router
from app.routers.orders import router as orders_router
from app.routers.live import router as live_router

settings = get_settings()

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
      - With REALTIME_SOURCE=supabase, subscribe to order row changes.

    Shutdown:
      - Remove the realtime channel, if any.
    """
    logger.info("🔄 Startup: Connecting to Postgres...")
    try:
        create_db_and_tables()
        logger.info("✅ Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"❌ Startup: DB connection FAILED: {e}")
        raise

    bridge = None
    if settings.REALTIME_SOURCE == "supabase":
        bridge = SupabaseRealtimeBridge(get_change_feed())
        await bridge.start()
    else:
        logger.info("Realtime: using in-process change feed")

    yield

    if bridge is not None:
        await bridge.stop()


app = FastAPI(
    title=settings.PROJECT_NAME or "Order Workflow API",
    version="0.1.0",
    lifespan=lifespan,
)

register_exception_handlers(app)


# --- CORS configuration ---
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Versioned API prefix, e.g. /api/v1
app.include_router(users_router, prefix=settings.API_V1_STR)
app.include_router(catalog_router, prefix=settings.API_V1_STR)
app.include_router(orders_router, prefix=settings.API_V1_STR)
app.include_router(live_router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "order-workflow"}
