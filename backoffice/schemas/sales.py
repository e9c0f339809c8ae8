"""
Sale schemas. Prices on sale lines are snapshots taken at sale time.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    DIGITAL = "digital"
    CHECK = "check"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class SaleItemCreate(BaseModel):
    inventory_id: int
    quantity: Decimal = Field(..., gt=0, decimal_places=3)
    unit_price: Decimal = Field(..., ge=0)


class SaleCreate(BaseModel):
    customer_name: Optional[str] = Field(None, max_length=150)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=30)
    # Emptiness is checked by the sale composer so direct callers get the same error
    items: List[SaleItemCreate]
    payment_method: PaymentMethod
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    notes: Optional[str] = None


class SaleItemRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sale_id: int
    inventory_id: int
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


class SaleRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sale_number: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    sale_date: datetime
    notes: Optional[str] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    items: List[SaleItemRecord] = []


class SaleListResponse(BaseModel):
    sales: List[SaleRecord]
    total: int
    skip: int
    limit: int
