"""
Read-only report queries for the admin dashboard.
- only completed sales count towards revenue
- date ranges are inclusive of the whole end day
- period bucketing happens in Python so PostgreSQL and SQLite agree
- nothing in this module writes
"""
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from backoffice.models import Category, Expense, InventoryItem, Sale, SaleItem
from backoffice.exceptions import PersistenceError, ValidationError
from backoffice.schemas.reports import (
    CategoryValue, CostsSection, DateRange, ExpenseCategoryBreakdown, ExpensePeriod, ExpensesReport,
    ExpensesSummary, ExpiringItem, GroupBy, InventoryReport, InventorySummary, LowStockItem,
    PaymentMethodBreakdown, ProfitLossReport, ProfitSection, RevenueSection, SalesPeriod, SalesReport,
    SalesSummary, TopItem,
)
from backoffice.schemas.sales import PaymentStatus
from backoffice.utils.periods import as_date, day_bounds, period_start, quantize_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
TOP_ITEMS_LIMIT = 10
ITEM_LIST_LIMIT = 20


def _check_range(start_date: date, end_date: date) -> None:
    if start_date > end_date:
        raise ValidationError("Start date must be before end date")


def _money(value) -> Decimal:
    return quantize_money(value if value is not None else 0)


def _average(total: Decimal, count: int) -> Decimal:
    return quantize_money(total / count) if count else ZERO


def _by_method(rows: Iterable[Tuple[str, Decimal]]) -> List[PaymentMethodBreakdown]:
    counts: Dict[str, int] = defaultdict(int)
    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO)
    for method, amount in rows:
        counts[method] += 1
        totals[method] += _money(amount)
    ordered = sorted(totals, key=lambda m: (-totals[m], m))
    return [PaymentMethodBreakdown(method=m, count=counts[m], total=totals[m]) for m in ordered]


def _completed_sales(start_date: date, end_date: date):
    lower, upper = day_bounds(start_date, end_date)
    return (
        Sale.payment_status == PaymentStatus.COMPLETED.value,
        Sale.sale_date >= lower,
        Sale.sale_date < upper,
    )


def _fetch(db: Session, stmt, what: str):
    try:
        return db.execute(stmt).all()
    except SQLAlchemyError as e:
        logger.error(f"Error building {what} report: {e}")
        raise PersistenceError() from e


# ==================== SALES ====================

def get_sales_report(db: Session, start_date: date, end_date: date, group_by: GroupBy = GroupBy.DAY) -> SalesReport:
    _check_range(start_date, end_date)
    group_by = GroupBy(group_by)
    conditions = _completed_sales(start_date, end_date)

    sales = _fetch(
        db,
        select(Sale.sale_date, Sale.total_amount, Sale.tax_amount, Sale.discount_amount, Sale.payment_method)
        .where(*conditions),
        "sales",
    )

    total_revenue = sum((_money(s.total_amount) for s in sales), ZERO)
    summary = SalesSummary(
        total_sales=len(sales),
        total_revenue=total_revenue,
        average_sale=_average(total_revenue, len(sales)),
        total_tax=sum((_money(s.tax_amount) for s in sales), ZERO),
        total_discounts=sum((_money(s.discount_amount) for s in sales), ZERO),
    )

    buckets: Dict[date, List[Decimal]] = defaultdict(list)
    for s in sales:
        buckets[period_start(as_date(s.sale_date), group_by.value)].append(_money(s.total_amount))
    time_series = [
        SalesPeriod(period=period, sales_count=len(amounts), revenue=sum(amounts, ZERO))
        for period, amounts in sorted(buckets.items())
    ]

    lines = _fetch(
        db,
        select(InventoryItem.id, InventoryItem.name, InventoryItem.sku, SaleItem.quantity, SaleItem.total_price)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .join(InventoryItem, SaleItem.inventory_id == InventoryItem.id)
        .where(*conditions),
        "sales",
    )
    top: Dict[int, dict] = {}
    for line in lines:
        entry = top.setdefault(
            line.id,
            {"inventory_id": line.id, "name": line.name, "sku": line.sku,
             "total_quantity": Decimal("0"), "total_revenue": ZERO},
        )
        entry["total_quantity"] += Decimal(str(line.quantity))
        entry["total_revenue"] += _money(line.total_price)
    ranked = sorted(top.values(), key=lambda e: (-e["total_revenue"], e["inventory_id"]))

    return SalesReport(
        summary=summary,
        time_series=time_series,
        payment_methods=_by_method((s.payment_method, s.total_amount) for s in sales),
        top_items=[TopItem(**entry) for entry in ranked[:TOP_ITEMS_LIMIT]],
        date_range=DateRange(start_date=start_date, end_date=end_date),
        group_by=group_by,
    )


# ==================== INVENTORY ====================

def get_inventory_report(db: Session, today: Optional[date] = None, expiry_days: int = 30) -> InventoryReport:
    """Snapshot of active stock: value at cost, per category, low and expiring lists"""
    today = today or date.today()
    items = _fetch(
        db,
        select(
            InventoryItem.name, InventoryItem.sku, InventoryItem.current_stock, InventoryItem.minimum_stock,
            InventoryItem.cost_price, InventoryItem.expiry_date, InventoryItem.category_id,
            Category.name.label("category_name"),
        )
        .outerjoin(Category, InventoryItem.category_id == Category.id)
        .where(InventoryItem.is_active.is_(True)),
        "inventory",
    )

    def stock_value(row) -> Decimal:
        return _money(Decimal(str(row.current_stock)) * Decimal(str(row.cost_price)))

    low = [row for row in items if Decimal(str(row.current_stock)) <= Decimal(str(row.minimum_stock))]
    summary = InventorySummary(
        total_items=len(items),
        total_value=sum((stock_value(row) for row in items), ZERO),
        low_stock_items=len(low),
        out_of_stock_items=sum(1 for row in items if Decimal(str(row.current_stock)) == 0),
    )

    categories = _fetch(
        db,
        select(Category.id, Category.name, Category.color).where(Category.is_active.is_(True)),
        "inventory",
    )
    breakdown = []
    for category in categories:
        members = [row for row in items if row.category_id == category.id]
        breakdown.append(
            CategoryValue(
                category_name=category.name,
                category_color=category.color,
                item_count=len(members),
                total_value=sum((stock_value(row) for row in members), ZERO),
            )
        )
    breakdown.sort(key=lambda c: (-c.total_value, c.category_name))

    low.sort(key=lambda row: (Decimal(str(row.current_stock)) - Decimal(str(row.minimum_stock)), row.name))
    horizon = today + timedelta(days=expiry_days)
    expiring = sorted(
        (row for row in items if row.expiry_date is not None and row.expiry_date <= horizon),
        key=lambda row: (row.expiry_date, row.name),
    )

    return InventoryReport(
        summary=summary,
        category_breakdown=breakdown,
        low_stock_items=[
            LowStockItem(
                name=row.name, sku=row.sku, current_stock=row.current_stock,
                minimum_stock=row.minimum_stock, category_name=row.category_name,
            )
            for row in low[:ITEM_LIST_LIMIT]
        ],
        expiring_items=[
            ExpiringItem(
                name=row.name, sku=row.sku, expiry_date=row.expiry_date,
                current_stock=row.current_stock, category_name=row.category_name,
            )
            for row in expiring[:ITEM_LIST_LIMIT]
        ],
    )


# ==================== EXPENSES ====================

def get_expenses_report(db: Session, start_date: date, end_date: date, group_by: GroupBy = GroupBy.DAY) -> ExpensesReport:
    _check_range(start_date, end_date)
    group_by = GroupBy(group_by)
    expenses = _fetch(
        db,
        select(Expense.expense_date, Expense.amount, Expense.category, Expense.payment_method)
        .where(Expense.expense_date >= start_date, Expense.expense_date <= end_date),
        "expenses",
    )

    total_amount = sum((_money(e.amount) for e in expenses), ZERO)

    per_category: Dict[str, List[Decimal]] = defaultdict(list)
    buckets: Dict[date, List[Decimal]] = defaultdict(list)
    for e in expenses:
        per_category[e.category].append(_money(e.amount))
        buckets[period_start(as_date(e.expense_date), group_by.value)].append(_money(e.amount))

    category_breakdown = sorted(
        (ExpenseCategoryBreakdown(category=name, count=len(amounts), total=sum(amounts, ZERO))
         for name, amounts in per_category.items()),
        key=lambda c: (-c.total, c.category),
    )

    return ExpensesReport(
        summary=ExpensesSummary(
            total_expenses=len(expenses),
            total_amount=total_amount,
            average_expense=_average(total_amount, len(expenses)),
        ),
        category_breakdown=category_breakdown,
        payment_methods=_by_method((e.payment_method, e.amount) for e in expenses),
        time_series=[
            ExpensePeriod(period=period, expense_count=len(amounts), total_amount=sum(amounts, ZERO))
            for period, amounts in sorted(buckets.items())
        ],
        date_range=DateRange(start_date=start_date, end_date=end_date),
        group_by=group_by,
    )


# ==================== PROFIT & LOSS ====================

def _margin(profit: Decimal, revenue: Decimal) -> Decimal:
    if revenue == 0:
        return ZERO
    return quantize_money(profit / revenue * 100)


def get_profit_loss(db: Session, start_date: date, end_date: date) -> ProfitLossReport:
    """
    revenue is sale totals (tax included); COGS is quantity sold times the
    item's current cost price; net profit also takes off expenses.
    """
    _check_range(start_date, end_date)
    conditions = _completed_sales(start_date, end_date)

    sales = _fetch(db, select(Sale.total_amount, Sale.tax_amount).where(*conditions), "profit/loss")
    revenue = sum((_money(s.total_amount) for s in sales), ZERO)
    tax = sum((_money(s.tax_amount) for s in sales), ZERO)

    expense_rows = _fetch(
        db,
        select(Expense.amount).where(Expense.expense_date >= start_date, Expense.expense_date <= end_date),
        "profit/loss",
    )
    expenses = sum((_money(row.amount) for row in expense_rows), ZERO)

    cost_rows = _fetch(
        db,
        select(SaleItem.quantity, InventoryItem.cost_price)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .join(InventoryItem, SaleItem.inventory_id == InventoryItem.id)
        .where(*conditions),
        "profit/loss",
    )
    cogs = _money(sum((Decimal(str(r.quantity)) * Decimal(str(r.cost_price)) for r in cost_rows), Decimal("0")))

    gross = revenue - cogs
    net = gross - expenses
    return ProfitLossReport(
        revenue=RevenueSection(total=revenue, tax=tax, net_revenue=revenue - tax),
        costs=CostsSection(cogs=cogs, expenses=expenses, total_costs=cogs + expenses),
        profit=ProfitSection(
            gross=gross,
            net=net,
            gross_margin=_margin(gross, revenue),
            net_margin=_margin(net, revenue),
        ),
        date_range=DateRange(start_date=start_date, end_date=end_date),
    )
