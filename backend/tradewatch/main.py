from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from tradewatch.core.config import settings
from tradewatch.core.database import init_db
from tradewatch.core.scheduler import start_scheduler, stop_scheduler, get_scheduler_status
from tradewatch.api import alerts, analytics, detect, market

# ─── Logging ───
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s | %(name)-20s | %(levelname)-7s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tradewatch.main")


# ─── Lifecycle ───

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("TradeWatch API starting up…")
    init_db()
    if settings.scheduler_enabled:
        start_scheduler()
    yield
    logger.info("TradeWatch API shutting down…")
    stop_scheduler()


app = FastAPI(
    title="TradeWatch API",
    description="Trade anomaly detection & connected intelligence",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
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

# Register routers
app.include_router(detect.router)
app.include_router(alerts.router)
app.include_router(analytics.router)
app.include_router(market.router)


@app.get("/")
def root():
    return {
        "name": "TradeWatch API",
        "version": "0.1.0",
        "description": "Trade anomaly detection & connected intelligence",
        "endpoints": {
            "detect": "/api/detect",
            "alerts": "/api/alerts",
            "analytics": "/api/analytics",
            "market": "/api/market",
            "docs": "/docs",
        },
    }


@app.get("/health")
def health():
    return {"status": "healthy", "scheduler": get_scheduler_status()}
