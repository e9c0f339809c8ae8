"""
Report schemas for the admin dashboard. Everything here is read-only output.
"""
from pydantic import BaseModel
from typing import List, Optional
from datetime import date
from decimal import Decimal
from enum import Enum


class GroupBy(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class DateRange(BaseModel):
    start_date: date
    end_date: date


# Sales report
class SalesSummary(BaseModel):
    total_sales: int
    total_revenue: Decimal
    average_sale: Decimal
    total_tax: Decimal
    total_discounts: Decimal


class SalesPeriod(BaseModel):
    period: date
    sales_count: int
    revenue: Decimal


class PaymentMethodBreakdown(BaseModel):
    method: str
    count: int
    total: Decimal


class TopItem(BaseModel):
    inventory_id: int
    name: str
    sku: Optional[str] = None
    total_quantity: Decimal
    total_revenue: Decimal


class SalesReport(BaseModel):
    summary: SalesSummary
    time_series: List[SalesPeriod]
    payment_methods: List[PaymentMethodBreakdown]
    top_items: List[TopItem]
    date_range: DateRange
    group_by: GroupBy


# Inventory report
class InventorySummary(BaseModel):
    total_items: int
    total_value: Decimal
    low_stock_items: int
    out_of_stock_items: int


class CategoryValue(BaseModel):
    category_name: str
    category_color: Optional[str] = None
    item_count: int
    total_value: Decimal


class LowStockItem(BaseModel):
    name: str
    sku: Optional[str] = None
    current_stock: Decimal
    minimum_stock: Decimal
    category_name: Optional[str] = None


class ExpiringItem(BaseModel):
    name: str
    sku: Optional[str] = None
    expiry_date: date
    current_stock: Decimal
    category_name: Optional[str] = None


class InventoryReport(BaseModel):
    summary: InventorySummary
    category_breakdown: List[CategoryValue]
    low_stock_items: List[LowStockItem]
    expiring_items: List[ExpiringItem]


# Expenses report
class ExpensesSummary(BaseModel):
    total_expenses: int
    total_amount: Decimal
    average_expense: Decimal


class ExpenseCategoryBreakdown(BaseModel):
    category: str
    count: int
    total: Decimal


class ExpensePeriod(BaseModel):
    period: date
    expense_count: int
    total_amount: Decimal


class ExpensesReport(BaseModel):
    summary: ExpensesSummary
    category_breakdown: List[ExpenseCategoryBreakdown]
    payment_methods: List[PaymentMethodBreakdown]
    time_series: List[ExpensePeriod]
    date_range: DateRange
    group_by: GroupBy


# Profit and loss
class RevenueSection(BaseModel):
    total: Decimal
    tax: Decimal
    net_revenue: Decimal


class CostsSection(BaseModel):
    cogs: Decimal
    expenses: Decimal
    total_costs: Decimal


class ProfitSection(BaseModel):
    gross: Decimal
    net: Decimal
    gross_margin: Decimal
    net_margin: Decimal


class ProfitLossReport(BaseModel):
    revenue: RevenueSection
    costs: CostsSection
    profit: ProfitSection
    date_range: DateRange
