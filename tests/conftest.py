"""
Pytest fixtures for the back-office test suite.

Provides:
- a fresh SQLite file database per test (same engine setup as production SQLite)
- seeded users and an inventory item factory
- a TestClient wired to the per-test database
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from fastapi.testclient import TestClient
from sqlalchemy import select, func
from sqlalchemy.orm import sessionmaker

from backoffice.database import Base, create_db_engine, get_db
from backoffice.main import app
from backoffice.models import Category, InventoryItem, Sale, SaleItem, StockMovement, User
from backoffice.security import create_access_token, get_password_hash

TAX_RATE = Decimal("0.10")
FIXED_NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
PASSWORD = "correct-horse-42"


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'backoffice_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def current_stock(db, item_id) -> Decimal:
    """Read stock straight from the table, then end the read transaction."""
    value = db.execute(select(InventoryItem.current_stock).where(InventoryItem.id == item_id)).scalar_one()
    db.commit()
    return Decimal(str(value))


def row_counts(db) -> dict:
    counts = {
        model.__tablename__: db.execute(select(func.count()).select_from(model)).scalar_one()
        for model in (Sale, SaleItem, StockMovement)
    }
    db.commit()
    return counts


# =============================================================================
# Seed data
# =============================================================================


def _user(db, email, role, first_name):
    user = User(
        email=email,
        password_hash=get_password_hash(PASSWORD),
        first_name=first_name,
        last_name="Tester",
        role=role,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def admin(db):
    return _user(db, "admin@backoffice.dev", "admin", "Ada")


@pytest.fixture
def staff(db):
    return _user(db, "staff@backoffice.dev", "staff", "Sam")


@pytest.fixture
def worker(db):
    return _user(db, "worker@backoffice.dev", "worker", "Wes")


@pytest.fixture
def category(db, admin):
    category = Category(name="Produce", color="#22C55E", created_by=admin.id)
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def make_item(db, admin):
    """Insert an inventory item directly (no opening movement)."""
    counter = {"n": 0}

    def _make(name=None, stock="10", minimum="5", cost="1.00", price="2.00", **extra):
        counter["n"] += 1
        item = InventoryItem(
            name=name or f"Item {counter['n']}",
            sku=extra.pop("sku", f"SKU-{counter['n']:03d}"),
            unit_of_measure="unit",
            current_stock=Decimal(stock),
            minimum_stock=Decimal(minimum),
            cost_price=Decimal(cost),
            selling_price=Decimal(price),
            created_by=admin.id,
            **extra,
        )
        db.add(item)
        db.commit()
        return item

    return _make


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth_headers(user) -> dict:
    token = create_access_token({"sub": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}
