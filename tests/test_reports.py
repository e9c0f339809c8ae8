"""
Tests for the reporting aggregator.

Fixture data for October 2026 (tax 10%):
    Mon 05  Apples x2 @ 2.00  cash  4.40
    Wed 07  Bread  x1 @ 5.00  card  5.50
    Tue 13  Apples x1 @ 2.00  cash  2.20  (23:30, last half hour of the day)
    Tue 06  Bread  x1 @ 5.00  card  refunded
    Mon 02 Nov  Apples x1 outside the range
Expenses: 2.10 utilities on the 10th, 0.90 supplies on the 20th.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from backoffice.crud.reports import get_expenses_report, get_inventory_report, get_profit_loss, get_sales_report
from backoffice.crud.sales import create_sale
from backoffice.exceptions import ValidationError
from backoffice.models import Expense, Sale
from backoffice.schemas.reports import GroupBy
from backoffice.schemas.sales import SaleCreate

from conftest import TAX_RATE

OCT_1 = date(2026, 10, 1)
OCT_31 = date(2026, 10, 31)


def at(day, hour=12, minute=0):
    return datetime(2026, day.month, day.day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def october(db, make_item, staff):
    apples = make_item(name="Apples", stock="100", cost="1.00", price="2.00")
    bread = make_item(name="Bread", stock="100", cost="3.00", price="5.00")

    def sell(item, qty, price, method, when):
        sale_in = SaleCreate(
            items=[{"inventory_id": item.id, "quantity": qty, "unit_price": price}],
            payment_method=method,
        )
        return create_sale(db, sale_in=sale_in, user_id=staff.id, tax_rate=TAX_RATE, now=when)

    sell(apples, "2", "2.00", "cash", at(date(2026, 10, 5)))
    sell(bread, "1", "5.00", "card", at(date(2026, 10, 7)))
    sell(apples, "1", "2.00", "cash", at(date(2026, 10, 13), 23, 30))
    refunded = sell(bread, "1", "5.00", "card", at(date(2026, 10, 6)))
    sell(apples, "1", "2.00", "cash", at(date(2026, 11, 2)))

    db.execute(update(Sale).where(Sale.id == refunded.id).values(payment_status="refunded"))
    db.add_all([
        Expense(title="Electricity", amount=Decimal("2.10"), category="Utilities",
                expense_date=date(2026, 10, 10), payment_method="card", created_by=staff.id),
        Expense(title="Napkins", amount=Decimal("0.90"), category="Supplies",
                expense_date=date(2026, 10, 20), payment_method="cash", created_by=staff.id),
    ])
    db.commit()
    return {"apples": apples, "bread": bread}


# =============================================================================
# Sales report
# =============================================================================


class TestSalesReport:

    def test_summary_counts_completed_sales_in_range(self, db, october):
        report = get_sales_report(db, OCT_1, OCT_31)
        db.commit()

        assert report.summary.total_sales == 3
        assert report.summary.total_revenue == Decimal("12.10")
        assert report.summary.total_tax == Decimal("1.10")
        assert report.summary.total_discounts == Decimal("0.00")
        assert report.summary.average_sale == Decimal("4.03")

    def test_daily_series(self, db, october):
        report = get_sales_report(db, OCT_1, OCT_31, GroupBy.DAY)
        db.commit()

        assert [(p.period, p.sales_count, p.revenue) for p in report.time_series] == [
            (date(2026, 10, 5), 1, Decimal("4.40")),
            (date(2026, 10, 7), 1, Decimal("5.50")),
            (date(2026, 10, 13), 1, Decimal("2.20")),
        ]

    def test_weekly_series_starts_on_monday(self, db, october):
        report = get_sales_report(db, OCT_1, OCT_31, GroupBy.WEEK)
        db.commit()

        assert [(p.period, p.sales_count, p.revenue) for p in report.time_series] == [
            (date(2026, 10, 5), 2, Decimal("9.90")),
            (date(2026, 10, 12), 1, Decimal("2.20")),
        ]

    def test_monthly_series(self, db, october):
        report = get_sales_report(db, OCT_1, date(2026, 11, 30), GroupBy.MONTH)
        db.commit()

        assert [(p.period, p.sales_count, p.revenue) for p in report.time_series] == [
            (date(2026, 10, 1), 3, Decimal("12.10")),
            (date(2026, 11, 1), 1, Decimal("2.20")),
        ]

    def test_end_date_includes_the_whole_day(self, db, october):
        report = get_sales_report(db, date(2026, 10, 13), date(2026, 10, 13))
        db.commit()

        assert report.summary.total_sales == 1
        assert report.summary.total_revenue == Decimal("2.20")

    def test_payment_methods_largest_first(self, db, october):
        report = get_sales_report(db, OCT_1, OCT_31)
        db.commit()

        assert [(m.method, m.count, m.total) for m in report.payment_methods] == [
            ("cash", 2, Decimal("6.60")),
            ("card", 1, Decimal("5.50")),
        ]

    def test_top_items_by_revenue(self, db, october):
        report = get_sales_report(db, OCT_1, OCT_31)
        db.commit()

        assert [(t.name, t.total_quantity, t.total_revenue) for t in report.top_items] == [
            ("Apples", Decimal("3"), Decimal("6.00")),
            ("Bread", Decimal("1"), Decimal("5.00")),
        ]

    def test_empty_range_is_all_zeros(self, db, october):
        report = get_sales_report(db, date(2026, 9, 1), date(2026, 9, 30))
        db.commit()

        assert report.summary.total_sales == 0
        assert report.summary.average_sale == Decimal("0.00")
        assert report.time_series == []
        assert report.top_items == []

    def test_reversed_range_is_rejected(self, db):
        with pytest.raises(ValidationError) as excinfo:
            get_sales_report(db, OCT_31, OCT_1)
        assert excinfo.value.message == "Start date must be before end date"

    def test_repeated_calls_agree(self, db, october):
        first = get_sales_report(db, OCT_1, OCT_31, GroupBy.WEEK)
        second = get_sales_report(db, OCT_1, OCT_31, GroupBy.WEEK)
        db.commit()

        assert first == second


# =============================================================================
# Expenses and profit & loss
# =============================================================================


class TestExpensesReport:

    def test_breakdown_and_weekly_series(self, db, october):
        report = get_expenses_report(db, OCT_1, OCT_31, GroupBy.WEEK)
        db.commit()

        assert report.summary.total_expenses == 2
        assert report.summary.total_amount == Decimal("3.00")
        assert report.summary.average_expense == Decimal("1.50")
        assert [(c.category, c.total) for c in report.category_breakdown] == [
            ("Utilities", Decimal("2.10")),
            ("Supplies", Decimal("0.90")),
        ]
        assert [(p.period, p.total_amount) for p in report.time_series] == [
            (date(2026, 10, 5), Decimal("2.10")),
            (date(2026, 10, 19), Decimal("0.90")),
        ]

    def test_reversed_range_is_rejected(self, db):
        with pytest.raises(ValidationError):
            get_expenses_report(db, OCT_31, OCT_1)


class TestProfitLoss:

    def test_october(self, db, october):
        report = get_profit_loss(db, OCT_1, OCT_31)
        db.commit()

        assert report.revenue.total == Decimal("12.10")
        assert report.revenue.tax == Decimal("1.10")
        assert report.revenue.net_revenue == Decimal("11.00")
        assert report.costs.cogs == Decimal("6.00")
        assert report.costs.expenses == Decimal("3.00")
        assert report.costs.total_costs == Decimal("9.00")
        assert report.profit.gross == Decimal("6.10")
        assert report.profit.net == Decimal("3.10")
        assert report.profit.gross_margin == Decimal("50.41")
        assert report.profit.net_margin == Decimal("25.62")

    def test_no_revenue_means_zero_margins(self, db):
        report = get_profit_loss(db, OCT_1, OCT_31)
        db.commit()

        assert report.profit.gross_margin == Decimal("0.00")
        assert report.profit.net_margin == Decimal("0.00")


# =============================================================================
# Inventory report
# =============================================================================


class TestInventoryReport:

    @pytest.fixture
    def stock(self, make_item, category):
        today = date(2026, 10, 19)
        make_item(name="Apples", stock="10", minimum="5", cost="1.00", category_id=category.id,
                  expiry_date=today + timedelta(days=60))
        make_item(name="Milk", stock="2", minimum="5", cost="0.50", expiry_date=today + timedelta(days=3))
        make_item(name="Ice", stock="0", minimum="0", cost="0.20")
        make_item(name="Yoghurt", stock="4", minimum="1", cost="2.00", expiry_date=today - timedelta(days=1))
        make_item(name="Retired", stock="50", cost="9.00", is_active=False)
        return today

    def test_summary(self, db, stock):
        report = get_inventory_report(db, today=stock, expiry_days=30)
        db.commit()

        assert report.summary.total_items == 4
        assert report.summary.total_value == Decimal("19.00")
        assert report.summary.low_stock_items == 2
        assert report.summary.out_of_stock_items == 1

    def test_category_breakdown(self, db, stock):
        report = get_inventory_report(db, today=stock, expiry_days=30)
        db.commit()

        (produce,) = report.category_breakdown
        assert produce.category_name == "Produce"
        assert produce.item_count == 1
        assert produce.total_value == Decimal("10.00")

    def test_low_stock_most_urgent_first(self, db, stock):
        report = get_inventory_report(db, today=stock, expiry_days=30)
        db.commit()

        assert [i.name for i in report.low_stock_items] == ["Milk", "Ice"]

    def test_expiring_includes_already_expired(self, db, stock):
        report = get_inventory_report(db, today=stock, expiry_days=30)
        db.commit()

        assert [i.name for i in report.expiring_items] == ["Yoghurt", "Milk"]
