"""
Report routes. Read-only; start_date after end_date is a 400.
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session
from datetime import date

from backoffice.config import settings
from backoffice.database import get_db
from backoffice.security import require_staff_or_higher
from backoffice import models
from backoffice.crud import reports
from backoffice.schemas.reports import (
    ExpensesReport, GroupBy, InventoryReport, ProfitLossReport, SalesReport,
)
from backoffice.utils.pdf_reports import pdf_generator

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/sales", response_model=SalesReport)
def sales_report(
    start_date: date,
    end_date: date,
    group_by: GroupBy = GroupBy.DAY,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return reports.get_sales_report(db, start_date, end_date, group_by)


@router.get("/sales/pdf")
def sales_report_pdf(
    start_date: date,
    end_date: date,
    group_by: GroupBy = GroupBy.DAY,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    report = reports.get_sales_report(db, start_date, end_date, group_by)
    filename = f"sales_report_{start_date.isoformat()}_{end_date.isoformat()}.pdf"
    return Response(
        content=pdf_generator.generate_sales_report(report),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/inventory", response_model=InventoryReport)
def inventory_report(
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return reports.get_inventory_report(db, expiry_days=settings.EXPIRY_WARNING_DAYS)


@router.get("/expenses", response_model=ExpensesReport)
def expenses_report(
    start_date: date,
    end_date: date,
    group_by: GroupBy = GroupBy.DAY,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return reports.get_expenses_report(db, start_date, end_date, group_by)


@router.get("/profit-loss", response_model=ProfitLossReport)
def profit_loss_report(
    start_date: date,
    end_date: date,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return reports.get_profit_loss(db, start_date, end_date)
