"""
SQLAlchemy 2.x models.
- current_stock is never negative (CHECK constraint + service checks)
- stock_movements is append-only
- sale_number is unique
"""
from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, Date, DateTime, ForeignKey, Text, JSON,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from decimal import Decimal

from backoffice.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30))
    role = Column(String(20), nullable=False, default="staff")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    sales = relationship("Sale", back_populates="creator")
    stock_movements = relationship("StockMovement", back_populates="creator")
    audit_logs = relationship("AuditLog", back_populates="user_rel")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    color = Column(String(7), nullable=False, default="#3B82F6")
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship("InventoryItem", back_populates="category")


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True)
    name = Column(String(150), nullable=False)
    contact_person = Column(String(100))
    email = Column(String(255))
    phone = Column(String(30))
    address = Column(Text)
    city = Column(String(100))
    state = Column(String(100))
    postal_code = Column(String(20))
    country = Column(String(100), default="USA")
    tax_id = Column(String(50))
    payment_terms = Column(String(100))
    notes = Column(Text)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship("InventoryItem", back_populates="supplier")
    expenses = relationship("Expense", back_populates="supplier")


class InventoryItem(Base):
    __tablename__ = "inventory"
    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_inventory_current_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String(150), nullable=False)
    description = Column(Text)
    sku = Column(String(64), unique=True)
    barcode = Column(String(64))
    category_id = Column(Integer, ForeignKey("categories.id"))
    supplier_id = Column(Integer, ForeignKey("suppliers.id"))
    unit_of_measure = Column(String(20), nullable=False, default="unit")
    current_stock = Column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    minimum_stock = Column(Numeric(12, 3), nullable=False, default=Decimal("0"))
    maximum_stock = Column(Numeric(12, 3))
    cost_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    selling_price = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    location = Column(String(100))
    expiry_date = Column(Date)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="items")
    supplier = relationship("Supplier", back_populates="items")
    movements = relationship("StockMovement", back_populates="item")
    sale_items = relationship("SaleItem", back_populates="item")


class StockMovement(Base):
    __tablename__ = "stock_movements"

    id = Column(Integer, primary_key=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False, index=True)
    movement_type = Column(String(20), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_cost = Column(Numeric(12, 2))
    reference_number = Column(String(50), index=True)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    item = relationship("InventoryItem", back_populates="movements")
    creator = relationship("User", back_populates="stock_movements")


class Sale(Base):
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True)
    sale_number = Column(String(30), unique=True, nullable=False)
    customer_name = Column(String(150))
    customer_email = Column(String(255))
    customer_phone = Column(String(30))
    subtotal = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default="completed")
    sale_date = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    creator = relationship("User", back_populates="sales")
    items = relationship("SaleItem", back_populates="sale", order_by="SaleItem.id")


class SaleItem(Base):
    __tablename__ = "sale_items"

    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False, index=True)
    inventory_id = Column(Integer, ForeignKey("inventory.id"), nullable=False)
    quantity = Column(Numeric(12, 3), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(12, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sale = relationship("Sale", back_populates="items")
    item = relationship("InventoryItem", back_populates="sale_items")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True)
    title = Column(String(200), nullable=False)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(100), nullable=False)
    expense_date = Column(Date, nullable=False, index=True)
    payment_method = Column(String(20), nullable=False)
    receipt_number = Column(String(100))
    supplier_id = Column(Integer, ForeignKey("suppliers.id"))
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurring_frequency = Column(String(20))
    tags = Column(JSON)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    supplier = relationship("Supplier", back_populates="expenses")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    action = Column(String(50), nullable=False)
    table_name = Column(String(50))
    record_id = Column(Integer)
    old_values = Column(JSON)
    new_values = Column(JSON)
    performed_at = Column(DateTime(timezone=True), server_default=func.now())
    notes = Column(Text)

    user_rel = relationship("User", back_populates="audit_logs")
