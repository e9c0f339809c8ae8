"""
Category and supplier routes. Deletes are soft and refused while active
inventory items still reference the record.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from backoffice.database import get_db
from backoffice.security import require_staff_or_higher, audit_log_action
from backoffice import models
from backoffice.crud.catalog import crud_category, crud_supplier
from backoffice.schemas.catalog import (
    CategoryCreate, CategoryListResponse, CategoryResponse, CategoryStats, CategoryUpdate,
    SupplierCreate, SupplierListResponse, SupplierResponse, SupplierUpdate,
)

categories_router = APIRouter(prefix="/categories", tags=["categories"])
suppliers_router = APIRouter(prefix="/suppliers", tags=["suppliers"])


# ====================
# CATEGORIES
# ====================

@categories_router.get("", response_model=CategoryListResponse)
def list_categories(
    search: Optional[str] = None,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    rows = crud_category.list_active(db, search=search)
    categories = []
    for category, item_count in rows:
        response = CategoryResponse.model_validate(category)
        response.item_count = item_count
        categories.append(response)
    return CategoryListResponse(categories=categories, total=len(categories))


@categories_router.get("/stats/overview", response_model=CategoryStats)
def category_stats(
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_category.stats_overview(db)


@categories_router.get("/{category_id}", response_model=CategoryResponse)
def get_category(
    category_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_category.get_active(db, category_id)


@categories_router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    category_in: CategoryCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    category = crud_category.create_category(db, category_in=category_in, user_id=current_user.id)
    audit_log_action(db=db, user_id=current_user.id, action="CATEGORY_CREATE", table_name="categories",
                     record_id=category.id, new_values=category_in.model_dump())
    return category


@categories_router.put("/{category_id}", response_model=CategoryResponse)
def update_category(
    category_id: int,
    category_in: CategoryUpdate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    category = crud_category.get_active(db, category_id)
    category = crud_category.update_category(db, category=category, category_in=category_in)
    audit_log_action(db=db, user_id=current_user.id, action="CATEGORY_UPDATE", table_name="categories",
                     record_id=category.id, new_values=category_in.model_dump(exclude_unset=True))
    return category


@categories_router.delete("/{category_id}")
def delete_category(
    category_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    category = crud_category.get_active(db, category_id)
    crud_category.delete_category(db, category=category)
    audit_log_action(db=db, user_id=current_user.id, action="CATEGORY_DELETE", table_name="categories",
                     record_id=category_id)
    return {"message": "Category deleted successfully"}


# ====================
# SUPPLIERS
# ====================

@suppliers_router.get("", response_model=SupplierListResponse)
def list_suppliers(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    suppliers, total = crud_supplier.list_active(db, search=search, skip=skip, limit=limit)
    return SupplierListResponse(suppliers=suppliers, total=total)


@suppliers_router.get("/{supplier_id}", response_model=SupplierResponse)
def get_supplier(
    supplier_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return crud_supplier.get_active(db, supplier_id)


@suppliers_router.post("", response_model=SupplierResponse, status_code=status.HTTP_201_CREATED)
def create_supplier(
    supplier_in: SupplierCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    supplier = crud_supplier.create_supplier(db, supplier_in=supplier_in, user_id=current_user.id)
    audit_log_action(db=db, user_id=current_user.id, action="SUPPLIER_CREATE", table_name="suppliers",
                     record_id=supplier.id, new_values=supplier_in.model_dump(mode="json"))
    return supplier


@suppliers_router.put("/{supplier_id}", response_model=SupplierResponse)
def update_supplier(
    supplier_id: int,
    supplier_in: SupplierUpdate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    supplier = crud_supplier.get_active(db, supplier_id)
    return crud_supplier.update_supplier(db, supplier=supplier, supplier_in=supplier_in)


@suppliers_router.delete("/{supplier_id}")
def delete_supplier(
    supplier_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    supplier = crud_supplier.get_active(db, supplier_id)
    crud_supplier.delete_supplier(db, supplier=supplier)
    audit_log_action(db=db, user_id=current_user.id, action="SUPPLIER_DELETE", table_name="suppliers",
                     record_id=supplier_id)
    return {"message": "Supplier deleted successfully"}
