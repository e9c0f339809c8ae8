from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from typing import Dict, List, Optional, Tuple
from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal

from backoffice.models import Expense
from backoffice.crud.base import CRUDBase
from backoffice.crud.catalog import crud_supplier
from backoffice.exceptions import PersistenceError
from backoffice.schemas.expenses import (
    ExpenseCategoryTotal, ExpenseCreate, ExpensePaymentTotal, ExpenseStats, ExpenseUpdate,
)
from backoffice.utils.periods import quantize_money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class CRUDExpense(CRUDBase[Expense]):
    resource_name = "Expense"

    def __init__(self):
        super().__init__(Expense)

    def get_expense(self, db: Session, id: int) -> Expense:
        # Expenses have no active flag; get_active only checks existence
        return self.get_active(db, id)

    def list_expenses(
        self,
        db: Session,
        *,
        search: Optional[str] = None,
        category: Optional[str] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[Expense], int]:
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(or_(Expense.title.ilike(pattern), Expense.description.ilike(pattern)))
        if category:
            filters.append(Expense.category == category)
        if start:
            filters.append(Expense.expense_date >= start)
        if end:
            filters.append(Expense.expense_date <= end)
        return self.get_multi(
            db, filters=filters, order_by=Expense.expense_date.desc(), skip=skip, limit=limit
        )

    def create_expense(self, db: Session, *, expense_in: ExpenseCreate, user_id: int) -> Expense:
        if expense_in.supplier_id is not None:
            crud_supplier.get_active(db, expense_in.supplier_id)
        data = expense_in.model_dump(mode="json")
        data.update(amount=expense_in.amount, expense_date=expense_in.expense_date, created_by=user_id)
        expense = self.create(db, obj_in=data)
        logger.info(f"Expense {expense.id} ({expense.amount}) recorded by user {user_id}")
        return expense

    def update_expense(self, db: Session, *, expense: Expense, expense_in: ExpenseUpdate) -> Expense:
        data = expense_in.model_dump(exclude_unset=True)
        if data.get("supplier_id") is not None:
            crud_supplier.get_active(db, data["supplier_id"])
        for key in ("payment_method", "recurring_frequency"):
            if data.get(key) is not None:
                data[key] = data[key].value
        return self.update(db, db_obj=expense, obj_in=data)

    def delete_expense(self, db: Session, *, expense: Expense) -> None:
        """Expenses are the one record type that is physically removed."""
        try:
            db.delete(expense)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error deleting expense {expense.id}: {e}")
            raise PersistenceError() from e
        logger.info(f"Expense {expense.id} deleted")

    def stats_summary(self, db: Session, today: Optional[date] = None) -> ExpenseStats:
        """
        This month against last month, plus this month's spend per category
        and per payment method, largest first. The change is a percentage of
        last month's total, 0 when last month had no expenses.
        """
        today = today or date.today()
        month_start = today.replace(day=1)
        previous_start = (month_start - timedelta(days=1)).replace(day=1)
        next_start = (month_start + timedelta(days=32)).replace(day=1)
        try:
            rows = db.execute(
                select(Expense.expense_date, Expense.amount, Expense.category, Expense.payment_method)
                .where(Expense.expense_date >= previous_start, Expense.expense_date < next_start)
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error building expense stats: {e}")
            raise PersistenceError() from e

        current = ZERO
        previous = ZERO
        per_category: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        per_method: Dict[str, Decimal] = defaultdict(lambda: ZERO)
        for row in rows:
            amount = quantize_money(row.amount)
            if row.expense_date < month_start:
                previous += amount
                continue
            current += amount
            per_category[row.category] += amount
            per_method[row.payment_method] += amount

        change = quantize_money((current - previous) / previous * 100) if previous > 0 else ZERO
        return ExpenseStats(
            current_month_total=current,
            previous_month_total=previous,
            percentage_change=change,
            category_breakdown=[
                ExpenseCategoryTotal(category=name, total=total)
                for name, total in sorted(per_category.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
            payment_method_breakdown=[
                ExpensePaymentTotal(payment_method=name, total=total)
                for name, total in sorted(per_method.items(), key=lambda kv: (-kv[1], kv[0]))
            ],
        )


crud_expense = CRUDExpense()
