"""
Database configuration:
- pool_pre_ping=True for PostgreSQL (psycopg2)
- SSL enforced for Supabase hosts
- SQLite transactions open with BEGIN IMMEDIATE so writers serialise
- Retry on OperationalError when testing the connection (max 2 retries)
"""
from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from dotenv import load_dotenv
import logging
from typing import Generator
import time

from backoffice.config import settings

load_dotenv()

logger = logging.getLogger(__name__)

Base = declarative_base()


def _configure_sqlite(engine: Engine) -> None:
    """
    pysqlite opens transactions lazily and only on DML, which breaks both
    SAVEPOINT handling and read-then-write locking. Take over BEGIN ourselves.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_db_engine(database_url: str) -> Engine:
    """Build an engine for the given URL with the settings each backend needs."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _configure_sqlite(engine)
        return engine

    # Render and Heroku hand out postgres:// URLs
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]

    if "supabase" in database_url and "sslmode" not in database_url:
        database_url += "?sslmode=require"
        logger.info("Added sslmode=require to DATABASE_URL")

    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_recycle=300,
        pool_timeout=30,
        echo=False,
    )


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; anything left uncommitted is rolled back on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def test_connection(bind: Engine = None) -> tuple[bool, str]:
    """Test database connection with retry"""
    bind = bind or engine
    for attempt in range(3):
        try:
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True, "Database connection successful"
        except OperationalError as e:
            if attempt == 2:
                return False, f"Database connection failed: {e}"
            logger.warning(f"Database connection attempt {attempt + 1} failed, retrying...")
            time.sleep(1)
    return False, "Database connection test failed"
