from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import date, datetime
from decimal import Decimal
from enum import Enum


class ExpensePaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    CHECK = "check"
    TRANSFER = "transfer"


class RecurringFrequency(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ExpenseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Decimal = Field(..., gt=0)
    category: str = Field(..., min_length=1, max_length=100)
    expense_date: date
    payment_method: ExpensePaymentMethod
    receipt_number: Optional[str] = None
    supplier_id: Optional[int] = None
    is_recurring: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: List[str] = []


class ExpenseUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(None, gt=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    expense_date: Optional[date] = None
    payment_method: Optional[ExpensePaymentMethod] = None
    receipt_number: Optional[str] = None
    supplier_id: Optional[int] = None
    is_recurring: Optional[bool] = None
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: Optional[List[str]] = None


class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: Optional[str] = None
    amount: Decimal
    category: str
    expense_date: date
    payment_method: ExpensePaymentMethod
    receipt_number: Optional[str] = None
    supplier_id: Optional[int] = None
    is_recurring: bool
    recurring_frequency: Optional[RecurringFrequency] = None
    tags: Optional[List[str]] = None
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExpenseListResponse(BaseModel):
    expenses: List[ExpenseResponse]
    total: int
    skip: int
    limit: int


class ExpenseCategoryTotal(BaseModel):
    category: str
    total: Decimal


class ExpensePaymentTotal(BaseModel):
    payment_method: str
    total: Decimal


class ExpenseStats(BaseModel):
    current_month_total: Decimal
    previous_month_total: Decimal
    percentage_change: Decimal
    category_breakdown: List[ExpenseCategoryTotal]
    payment_method_breakdown: List[ExpensePaymentTotal]
