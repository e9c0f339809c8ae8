"""
Sales routes. Creation is a single call into the sale composer.
"""
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session
from typing import Optional
from datetime import date

from backoffice.config import settings
from backoffice.database import get_db
from backoffice.security import require_staff_or_higher
from backoffice import models
from backoffice.crud.sales import create_sale, crud_sale, get_sale, list_sales
from backoffice.schemas.sales import PaymentMethod, PaymentStatus, SaleCreate, SaleListResponse, SaleRecord
from backoffice.utils.pdf_reports import pdf_generator

router = APIRouter(prefix="/sales", tags=["sales"])


@router.get("", response_model=SaleListResponse)
def list_all_sales(
    search: Optional[str] = None,
    payment_method: Optional[PaymentMethod] = None,
    payment_status: Optional[PaymentStatus] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    sales, total = list_sales(
        db, search=search, payment_method=payment_method, payment_status=payment_status,
        start=start_date, end=end_date, skip=skip, limit=limit,
    )
    return SaleListResponse(sales=sales, total=total, skip=skip, limit=limit)


@router.get("/{sale_id}", response_model=SaleRecord)
def get_one_sale(
    sale_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return get_sale(db, sale_id)


@router.post("", response_model=SaleRecord, status_code=status.HTTP_201_CREATED)
def create_new_sale(
    sale_in: SaleCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    """
    Record a completed sale. Fails as a whole with 400 (empty cart or
    insufficient stock), 404 (unknown item) or 409 (sale number clash, retry).
    """
    return create_sale(db, sale_in=sale_in, user_id=current_user.id, tax_rate=settings.TAX_RATE)


@router.get("/{sale_id}/receipt")
def sale_receipt(
    sale_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    sale = crud_sale.get_with_items(db, sale_id)
    pdf = pdf_generator.generate_receipt(sale)
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="receipt_{sale.sale_number}.pdf"'},
    )
