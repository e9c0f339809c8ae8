"""
Inventory schemas:
- current_stock is only written by stock movements and sales
- the movement ledger is append-only
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class StockStatus(str, Enum):
    NORMAL = "NORMAL"
    LOW = "LOW"
    OUT_OF_STOCK = "OUT_OF_STOCK"


# Inventory Item Schemas
class InventoryItemBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    description: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=64)
    barcode: Optional[str] = Field(None, max_length=64)
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    unit_of_measure: str = Field(..., min_length=1, max_length=20)
    minimum_stock: Decimal = Field(Decimal("0"), ge=0)
    maximum_stock: Optional[Decimal] = Field(None, ge=0)
    cost_price: Decimal = Field(..., ge=0)
    selling_price: Decimal = Field(..., ge=0)
    location: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[date] = None

    @field_validator("sku", "barcode")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class InventoryItemCreate(InventoryItemBase):
    # Opening balance; recorded as an "in" movement when positive
    current_stock: Decimal = Field(Decimal("0"), ge=0, decimal_places=3)


class InventoryItemUpdate(BaseModel):
    """Partial update. current_stock is deliberately absent."""
    name: Optional[str] = Field(None, min_length=1, max_length=150)
    description: Optional[str] = None
    sku: Optional[str] = Field(None, max_length=64)
    barcode: Optional[str] = Field(None, max_length=64)
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    unit_of_measure: Optional[str] = Field(None, min_length=1, max_length=20)
    minimum_stock: Optional[Decimal] = Field(None, ge=0)
    maximum_stock: Optional[Decimal] = Field(None, ge=0)
    cost_price: Optional[Decimal] = Field(None, ge=0)
    selling_price: Optional[Decimal] = Field(None, ge=0)
    location: Optional[str] = Field(None, max_length=100)
    expiry_date: Optional[date] = None
    is_active: Optional[bool] = None


class InventoryItemRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    sku: Optional[str] = None
    barcode: Optional[str] = None
    category_id: Optional[int] = None
    supplier_id: Optional[int] = None
    unit_of_measure: str
    current_stock: Decimal
    minimum_stock: Decimal
    maximum_stock: Optional[Decimal] = None
    cost_price: Decimal
    selling_price: Decimal
    location: Optional[str] = None
    expiry_date: Optional[date] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class InventoryItemResponse(InventoryItemRecord):
    category_name: Optional[str] = None
    supplier_name: Optional[str] = None
    is_low_stock: bool = False


class InventoryListResponse(BaseModel):
    items: List[InventoryItemResponse]
    total: int
    skip: int
    limit: int


# Stock movement schemas (append-only)
class StockMovementCreate(BaseModel):
    inventory_id: int
    movement_type: MovementType
    quantity: Decimal = Field(..., decimal_places=3)
    unit_cost: Optional[Decimal] = Field(None, ge=0)
    reference_number: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = None


class StockMovementRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    inventory_id: int
    movement_type: MovementType
    quantity: Decimal
    unit_cost: Optional[Decimal] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None


class StockMovementResult(BaseModel):
    previous_stock: Decimal
    new_stock: Decimal
    movement: StockMovementRecord


# Alerts
class StockAlert(BaseModel):
    item_id: int
    name: str
    sku: Optional[str] = None
    level: str
    status: StockStatus
    current_stock: Decimal
    minimum_stock: Decimal
    expiry_date: Optional[date] = None
    message: str


class StockAlertsResponse(BaseModel):
    alerts: List[StockAlert]
    out_of_stock_count: int
    low_stock_count: int
    expiring_count: int
