"""
PumpDispatch - Pharmacy Pump Logistics REST API
Orders, pump custody, pickup and delivery signatures for pharmacies and their drivers
"""

# Environment must be loaded before settings are read
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
import uvicorn
from contextlib import asynccontextmanager
import logging
import os
from datetime import datetime

from pumpdispatch.config import settings
from pumpdispatch.database import engine, Base, SessionLocal
from pumpdispatch.models import (  # noqa: F401 - register tables with Base.metadata
    activity_log, customer, driver, employee, order, pharmacy, pump, signature,
)
from pumpdispatch.routers import admin, auth, customers, driver as driver_router, orders, pumps, returns, tracking
from pumpdispatch.services.activity_logger import ActivityLogger
from pumpdispatch.utils.error_handler import internal_error_response, register_conflict_handlers
from pumpdispatch.utils.rate_limit import limiter

API_VERSION = "1.0.0"

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting PumpDispatch API {API_VERSION}")
    Base.metadata.create_all(bind=engine)
    if settings.STORAGE_BACKEND == "local":
        os.makedirs(settings.STORAGE_DIR, exist_ok=True)
        logger.info(f"Database ready, storing files under {settings.STORAGE_DIR}")
    else:
        logger.info(f"Database ready, storing files in bucket {settings.S3_BUCKET}")

    yield

    logger.info("PumpDispatch API stopped")

app = FastAPI(
    title="PumpDispatch API",
    description="Infusion pump logistics for pharmacies: orders, driver pickups and deliveries, returns and maintenance",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
register_conflict_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ROUTERS = (
    (auth.router, "auth", "authentication"),
    (admin.router, "admin", "admin"),
    (customers.router, "customers", "customers"),
    (pumps.router, "pumps", "pumps"),
    (orders.router, "orders", "orders"),
    (driver_router.router, "driver", "driver"),
    (returns.router, "returns", "returns"),
    (tracking.router, "tracking", "tracking"),
)
for router, prefix, tag in ROUTERS:
    app.include_router(router, prefix=f"/api/v1/{prefix}", tags=[tag])

# Signature images and delivery PDFs; an absolute URL means files are served elsewhere
if settings.STORAGE_BACKEND == "local" and settings.STORAGE_BASE_URL.startswith("/"):
    app.mount(
        settings.STORAGE_BASE_URL,
        StaticFiles(directory=settings.STORAGE_DIR, check_dir=False),
        name="files"
    )

@app.get("/")
@limiter.limit("10/minute")
async def root(request: Request):
    """Public service information"""
    return {
        "message": "PumpDispatch API",
        "version": API_VERSION,
        "docs": "/docs",
        "roles": ["admin", "pharmacy", "employee", "driver"],
        "timestamp": datetime.utcnow().isoformat()
    }

@app.get("/health")
@limiter.limit("30/minute")
async def health_check(request: Request):
    """Liveness plus a database round trip"""
    database = "ok"
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check could not reach the database: {e}")
        database = "unavailable"
    finally:
        db.close()

    return {
        "status": "healthy" if database == "ok" else "degraded",
        "database": database,
        "timestamp": datetime.utcnow().isoformat()
    }

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Anything a router did not turn into an HTTP error ends up here as a 500"""
    context, response = internal_error_response(request, exc)

    db = SessionLocal()
    try:
        await ActivityLogger(db).record(request, 500, error_message=f"[{context.request_id}] {exc}")
    finally:
        db.close()

    return response

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
        reload=True,
        log_level="info"
    )
