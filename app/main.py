from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

from app.database.database import sync_engine, Base

from app.common.middleware import TenantMiddleware, SecurityHeadersMiddleware

# Routers
from app.modules.cash_sessions.router import router as cash_sessions_router
from app.modules.orders.router import router as orders_router
from app.modules.expenses.router import router as expenses_router
from app.modules.reports.routers import (
    reconciliation_router as reconciliation_reports_router,
    analytics_router as analytics_reports_router
)

# Models for table creation
import app.modules.cash_sessions.models
import app.modules.orders.models
import app.modules.expenses.models

from app.core.config import settings

logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Caja API",
    description="Multi-tenant cash-session ledger: shifts, orders, expenses and reconciliation",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Middleware (order matters)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(TenantMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(cash_sessions_router, prefix="/api/v1")
app.include_router(orders_router, prefix="/api/v1")
app.include_router(expenses_router, prefix="/api/v1")
app.include_router(reconciliation_reports_router, prefix="/api/v1")
app.include_router(analytics_reports_router, prefix="/api/v1")

# Development only; production schemas are managed with migrate.py
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=sync_engine)


@app.get("/")
async def read_root():
    return {
        "message": "Caja API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("Caja API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Event relay enabled: {settings.EVENT_RELAY_ENABLED}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Caja API shutting down...")
