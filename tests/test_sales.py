"""
Tests for the sale composer: totals, atomicity, numbering and concurrency.
"""
import threading
from decimal import Decimal

import pydantic
import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from backoffice.crud import sales as sales_crud
from backoffice.crud.inventory import stock_ledger
from backoffice.crud.sales import compute_totals, create_sale, generate_sale_number, get_sale, list_sales
from backoffice.exceptions import (
    ConflictError, InsufficientStockError, NotFoundError, PersistenceError, ValidationError,
)
from backoffice.models import InventoryItem, Sale, StockMovement
from backoffice.schemas.sales import PaymentMethod, PaymentStatus, SaleCreate

from conftest import FIXED_NOW, TAX_RATE, current_stock, row_counts


def cart(*lines, payment_method="cash", discount="0", **extra) -> SaleCreate:
    return SaleCreate(
        items=[
            {"inventory_id": item_id, "quantity": Decimal(str(qty)), "unit_price": Decimal(str(price))}
            for item_id, qty, price in lines
        ],
        payment_method=payment_method,
        discount_amount=Decimal(discount),
        **extra,
    )


def sell(db, sale_in, user, now=FIXED_NOW):
    return create_sale(db, sale_in=sale_in, user_id=user.id, tax_rate=TAX_RATE, now=now)


# =============================================================================
# Totals
# =============================================================================


class TestComputeTotals:

    def test_two_line_sale(self):
        line_totals, amounts = compute_totals(cart((1, 2, "2.00"), (2, 1, "5.00")), TAX_RATE)

        assert line_totals == [Decimal("4.00"), Decimal("5.00")]
        assert amounts["subtotal"] == Decimal("9.00")
        assert amounts["tax_amount"] == Decimal("0.90")
        assert amounts["total_amount"] == Decimal("9.90")

    def test_line_total_rounds_half_up(self):
        line_totals, amounts = compute_totals(cart((1, "0.5", "2.25")), TAX_RATE)

        assert line_totals == [Decimal("1.13")]
        assert amounts["tax_amount"] == Decimal("0.11")
        assert amounts["total_amount"] == Decimal("1.24")

    def test_discount_larger_than_sale_gives_negative_total(self):
        _, amounts = compute_totals(cart((1, 1, "2.00"), discount="5.00"), TAX_RATE)

        assert amounts["total_amount"] == Decimal("-2.80")


# =============================================================================
# create_sale
# =============================================================================


class TestCreateSale:

    def test_completed_sale_decrements_stock_and_records_lines(self, db, make_item, staff):
        flour = make_item(name="Flour", stock="10", cost="1.00")
        sugar = make_item(name="Sugar", stock="5", cost="3.00")

        sale = sell(db, cart((flour.id, 2, "2.00"), (sugar.id, 1, "5.00"), customer_name="Walk-in"), staff)

        assert sale.sale_number == "SALE-20261019-0001"
        assert sale.payment_status == PaymentStatus.COMPLETED
        assert sale.subtotal == Decimal("9.00")
        assert sale.tax_amount == Decimal("0.90")
        assert sale.total_amount == Decimal("9.90")
        assert sale.created_by == staff.id
        assert [line.total_price for line in sale.items] == [Decimal("4.00"), Decimal("5.00")]
        assert current_stock(db, flour.id) == Decimal("8")
        assert current_stock(db, sugar.id) == Decimal("4")

    def test_every_line_has_an_out_movement(self, db, make_item, staff):
        flour = make_item(stock="10", cost="1.25")
        sugar = make_item(stock="5", cost="3.00")

        sale = sell(db, cart((flour.id, 2, "2.00"), (sugar.id, 1, "5.00")), staff)

        movements = db.execute(select(StockMovement).order_by(StockMovement.id)).scalars().all()
        db.commit()
        assert [(m.inventory_id, m.movement_type) for m in movements] == [(flour.id, "out"), (sugar.id, "out")]
        assert all(m.reference_number == sale.sale_number for m in movements)
        assert movements[0].notes == f"Sale: {sale.sale_number}"
        assert Decimal(str(movements[0].unit_cost)) == Decimal("1.25")
        assert Decimal(str(movements[0].quantity)) == Decimal("2")
        assert all(m.created_by == staff.id for m in movements)

    def test_one_short_line_fails_the_whole_sale(self, db, make_item, staff):
        flour = make_item(name="Flour", stock="10")
        saffron = make_item(name="Saffron", stock="1")

        with pytest.raises(InsufficientStockError) as excinfo:
            sell(db, cart((flour.id, 2, "2.00"), (saffron.id, 5, "9.00")), staff)

        assert excinfo.value.item_name == "Saffron"
        assert excinfo.value.available == Decimal("1")
        assert row_counts(db) == {"sales": 0, "sale_items": 0, "stock_movements": 0}
        assert current_stock(db, flour.id) == Decimal("10")
        assert current_stock(db, saffron.id) == Decimal("1")

    def test_repeated_item_lines_are_checked_together(self, db, make_item, staff):
        flour = make_item(name="Flour", stock="3")

        with pytest.raises(InsufficientStockError) as excinfo:
            sell(db, cart((flour.id, 2, "2.00"), (flour.id, 2, "2.00")), staff)

        assert excinfo.value.requested == Decimal("4")
        assert current_stock(db, flour.id) == Decimal("3")

    def test_empty_cart_is_rejected(self, db, staff):
        with pytest.raises(ValidationError) as excinfo:
            sell(db, cart(), staff)

        assert "items" in excinfo.value.message
        assert row_counts(db)["sales"] == 0

    def test_unknown_item_is_not_found(self, db, make_item, staff):
        flour = make_item(stock="10")

        with pytest.raises(NotFoundError) as excinfo:
            sell(db, cart((flour.id, 1, "2.00"), (999, 1, "2.00")), staff)

        assert excinfo.value.message == "Inventory item with ID 999 not found"
        assert row_counts(db) == {"sales": 0, "sale_items": 0, "stock_movements": 0}
        assert current_stock(db, flour.id) == Decimal("10")

    def test_inactive_item_cannot_be_sold(self, db, make_item, staff):
        retired = make_item(stock="10", is_active=False)

        with pytest.raises(NotFoundError):
            sell(db, cart((retired.id, 1, "2.00")), staff)

    def test_selling_the_last_unit_is_allowed(self, db, make_item, staff):
        flour = make_item(stock="2")

        sell(db, cart((flour.id, 2, "2.00")), staff)

        assert current_stock(db, flour.id) == Decimal("0")

    def test_fractional_lines_can_empty_the_item(self, db, make_item, staff):
        salt = make_item(name="Salt", stock="0.3")

        sale = sell(db, cart((salt.id, "0.1", "2.00"), (salt.id, "0.2", "2.00")), staff)

        assert [line.quantity for line in sale.items] == [Decimal("0.1"), Decimal("0.2")]
        assert current_stock(db, salt.id) == Decimal("0")
        assert row_counts(db) == {"sales": 1, "sale_items": 2, "stock_movements": 2}

    def test_stock_taken_after_the_check_fails_the_sale(self, db, make_item, staff, monkeypatch):
        flour = make_item(name="Flour", stock="5")
        original_insert = sales_crud._insert_header

        def drain_then_insert(session, **kwargs):
            session.execute(
                update(InventoryItem).where(InventoryItem.id == flour.id).values(current_stock=Decimal("1"))
            )
            return original_insert(session, **kwargs)

        monkeypatch.setattr(sales_crud, "_insert_header", drain_then_insert)

        with pytest.raises(InsufficientStockError) as excinfo:
            sell(db, cart((flour.id, 3, "2.00")), staff)

        assert excinfo.value.available == Decimal("1")
        assert row_counts(db) == {"sales": 0, "sale_items": 0, "stock_movements": 0}
        assert current_stock(db, flour.id) == Decimal("5")

    def test_quantity_precision_is_capped_at_three_places(self):
        with pytest.raises(pydantic.ValidationError):
            cart((1, "1.2345", "2.00"))

    def test_storage_failure_leaves_nothing_behind(self, db, make_item, staff, monkeypatch):
        flour = make_item(stock="10")
        sugar = make_item(stock="10")
        original_append = stock_ledger.append
        calls = {"n": 0}

        def fail_on_second_line(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise SQLAlchemyError("connection reset")
            return original_append(*args, **kwargs)

        monkeypatch.setattr(sales_crud.stock_ledger, "append", fail_on_second_line)

        with pytest.raises(PersistenceError):
            sell(db, cart((flour.id, 1, "2.00"), (sugar.id, 1, "2.00")), staff)

        assert row_counts(db) == {"sales": 0, "sale_items": 0, "stock_movements": 0}
        assert current_stock(db, flour.id) == Decimal("10")
        assert current_stock(db, sugar.id) == Decimal("10")


# =============================================================================
# Sale numbers
# =============================================================================


class TestSaleNumbers:

    def test_numbers_follow_the_day_count(self, db, make_item, staff):
        flour = make_item(stock="10")

        first = sell(db, cart((flour.id, 1, "2.00")), staff)
        second = sell(db, cart((flour.id, 1, "2.00")), staff)

        assert first.sale_number == "SALE-20261019-0001"
        assert second.sale_number == "SALE-20261019-0002"

    def test_generate_counts_only_the_given_day(self, db, make_item, staff):
        flour = make_item(stock="10")
        sell(db, cart((flour.id, 1, "2.00")), staff, now=FIXED_NOW.replace(day=18))

        assert generate_sale_number(db, FIXED_NOW) == "SALE-20261019-0001"
        db.commit()

    def _existing_sale(self, db, sale_number):
        db.add(Sale(
            sale_number=sale_number, subtotal=Decimal("1.00"), total_amount=Decimal("1.00"),
            payment_method="cash", payment_status="completed", sale_date=FIXED_NOW,
        ))
        db.commit()

    def test_taken_number_is_regenerated_once(self, db, make_item, staff):
        flour = make_item(stock="10")
        self._existing_sale(db, "SALE-20261019-0002")

        sale = sell(db, cart((flour.id, 1, "2.00")), staff)

        assert sale.sale_number == "SALE-20261019-0003"
        assert row_counts(db) == {"sales": 2, "sale_items": 1, "stock_movements": 1}

    def test_second_clash_is_a_conflict(self, db, make_item, staff, monkeypatch):
        flour = make_item(stock="10")
        self._existing_sale(db, "SALE-20261019-0002")
        monkeypatch.setattr(sales_crud, "next_free_sale_number", lambda db, now: "SALE-20261019-0002")

        with pytest.raises(ConflictError):
            sell(db, cart((flour.id, 1, "2.00")), staff)

        assert row_counts(db) == {"sales": 1, "sale_items": 0, "stock_movements": 0}
        assert current_stock(db, flour.id) == Decimal("10")


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrentSales:

    def test_last_unit_is_sold_exactly_once(self, session_factory, make_item, staff, db):
        flour = make_item(stock="1")
        db.close()
        barrier = threading.Barrier(4)
        outcomes = []

        def checkout():
            session = session_factory()
            try:
                barrier.wait()
                create_sale(session, sale_in=cart((flour.id, 1, "2.00")), user_id=staff.id, tax_rate=TAX_RATE)
                outcomes.append("ok")
            except InsufficientStockError:
                outcomes.append("insufficient")
            finally:
                session.close()

        threads = [threading.Thread(target=checkout) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        check = session_factory()
        assert sorted(outcomes) == ["insufficient", "insufficient", "insufficient", "ok"]
        assert current_stock(check, flour.id) == Decimal("0")
        assert row_counts(check) == {"sales": 1, "sale_items": 1, "stock_movements": 1}
        check.close()


# =============================================================================
# Reads
# =============================================================================


class TestSaleReads:

    def test_get_sale_returns_lines(self, db, make_item, staff):
        flour = make_item(stock="10")
        created = sell(db, cart((flour.id, 3, "2.00")), staff)

        sale = get_sale(db, created.id)
        db.commit()

        assert sale.sale_number == created.sale_number
        assert len(sale.items) == 1
        assert sale.items[0].quantity == Decimal("3")

    def test_get_missing_sale(self, db):
        with pytest.raises(NotFoundError) as excinfo:
            get_sale(db, 77)
        assert excinfo.value.message == "Sale with ID 77 not found"

    def test_list_filters_by_payment_method(self, db, make_item, staff):
        flour = make_item(stock="10")
        sell(db, cart((flour.id, 1, "2.00"), payment_method="cash"), staff)
        sell(db, cart((flour.id, 1, "2.00"), payment_method="card"), staff)

        sales, total = list_sales(db, payment_method=PaymentMethod.CARD)
        db.commit()

        assert total == 1
        assert sales[0].payment_method == PaymentMethod.CARD
