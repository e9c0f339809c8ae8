from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from backoffice.database import get_db
from backoffice.security import require_staff_or_higher, audit_log_action
from backoffice import models
from backoffice.crud.expenses import crud_expense
from backoffice.exceptions import ValidationError
from backoffice.schemas.expenses import (
    ExpenseCreate, ExpenseListResponse, ExpenseResponse, ExpenseStats, ExpenseUpdate,
)

router = APIRouter(prefix="/expenses", tags=["expenses"])


@router.get("", response_model=ExpenseListResponse)
def list_expenses(
    search: Optional[str] = None,
    category: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    if start_date and end_date and start_date > end_date:
        raise ValidationError("Start date must be before end date")
    expenses, total = crud_expense.list_expenses(
        db, search=search, category=category, start=start_date, end=end_date, skip=skip, limit=limit
    )
    return ExpenseListResponse(expenses=expenses, total=total, skip=skip, limit=limit)


@router.get("/stats/summary", response_model=ExpenseStats)
def expense_stats(
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_expense.stats_summary(db)


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(
    expense_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_expense.get_expense(db, expense_id)


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    expense_in: ExpenseCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_expense.create_expense(db, expense_in=expense_in, user_id=current_user.id)


@router.put("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: int,
    expense_in: ExpenseUpdate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    expense = crud_expense.get_expense(db, expense_id)
    return crud_expense.update_expense(db, expense=expense, expense_in=expense_in)


@router.delete("/{expense_id}")
def delete_expense(
    expense_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    expense = crud_expense.get_expense(db, expense_id)
    old_values = {"title": expense.title, "amount": str(expense.amount), "category": expense.category}
    crud_expense.delete_expense(db, expense=expense)
    audit_log_action(db=db, user_id=current_user.id, action="EXPENSE_DELETE", table_name="expenses",
                     record_id=expense_id, old_values=old_values)
    return {"message": "Expense deleted successfully"}
