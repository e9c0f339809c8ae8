"""
FastAPI application.
- preflight database test and table creation on startup
- optional bootstrap admin from settings
- every router mounted under /api
"""
from fastapi import FastAPI, Depends
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from contextlib import asynccontextmanager
import logging

from backoffice.config import settings
from backoffice.database import Base, SessionLocal, engine, get_db, test_connection
from backoffice.exception_handlers import setup_exception_handlers
from backoffice import models  # noqa: F401  registers tables on Base.metadata
from backoffice.crud.users import crud_user
from backoffice.routers import (
    auth_router, categories_router, expenses_router, inventory_router, reports_router,
    sales_router, suppliers_router, workers_router,
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} {settings.APP_VERSION}")

    success, message = test_connection()
    if not success:
        logger.error(f"Preflight test failed: {message}")
    else:
        logger.info(f"Preflight test passed: {message}")
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified")

        with SessionLocal() as db:
            crud_user.ensure_admin(db, settings.DEFAULT_ADMIN_EMAIL, settings.DEFAULT_ADMIN_PASSWORD)

    yield

    logger.info(f"Shutting down {settings.APP_NAME}")


app = FastAPI(
    title=settings.APP_NAME,
    description="Inventory, sales, expenses and reporting back-office API",
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

for router in (
    auth_router, inventory_router, sales_router, reports_router,
    categories_router, suppliers_router, expenses_router, workers_router,
):
    app.include_router(router, prefix="/api")


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Service health; reports database trouble instead of failing"""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        db_status = "error"
        logger.warning(f"Health check database error: {e}")

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "service": "backoffice",
        "database": db_status,
        "version": settings.APP_VERSION,
    }


@app.get("/")
def root():
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "endpoints": {
            "docs": "/api/docs",
            "health": "/health",
            "auth": "/api/auth/login",
            "api": "/api"
        }
    }
