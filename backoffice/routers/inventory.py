"""
Inventory routes.
- item edits never touch current_stock
- stock changes go through POST /stock-movement only
- the movement ledger is read-only over HTTP
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from backoffice.config import settings
from backoffice.database import get_db
from backoffice.security import require_staff_or_higher, require_manager_or_admin, audit_log_action
from backoffice import models
from backoffice.crud.inventory import crud_inventory_item, stock_ledger, record_stock_movement
from backoffice.schemas.inventory import (
    InventoryItemCreate, InventoryItemResponse, InventoryItemUpdate, InventoryListResponse,
    MovementType, StockAlertsResponse, StockMovementCreate, StockMovementRecord, StockMovementResult,
)
from backoffice.utils.alerts import check_stock_alerts

router = APIRouter(prefix="/inventory", tags=["inventory"])


def to_response(item: models.InventoryItem) -> InventoryItemResponse:
    response = InventoryItemResponse.model_validate(item)
    response.category_name = item.category.name if item.category is not None else None
    response.supplier_name = item.supplier.name if item.supplier is not None else None
    response.is_low_stock = item.current_stock <= item.minimum_stock
    return response


# ====================
# ITEMS
# ====================

@router.get("", response_model=InventoryListResponse)
def list_inventory_items(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    supplier_id: Optional[int] = None,
    low_stock: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    items, total = crud_inventory_item.list_items(
        db, search=search, category_id=category_id, supplier_id=supplier_id,
        low_stock=low_stock, skip=skip, limit=limit,
    )
    return InventoryListResponse(items=[to_response(i) for i in items], total=total, skip=skip, limit=limit)


@router.get("/alerts", response_model=StockAlertsResponse)
def stock_alerts(
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    """Out-of-stock, low-stock and expiring items"""
    return check_stock_alerts(db, expiry_days=settings.EXPIRY_WARNING_DAYS)


@router.get("/movements", response_model=List[StockMovementRecord])
def list_movements(
    inventory_id: Optional[int] = None,
    movement_type: Optional[MovementType] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    rows, _ = stock_ledger.list_movements(
        db, inventory_id=inventory_id, movement_type=movement_type,
        start=start_date, end=end_date, skip=skip, limit=limit,
    )
    return rows


@router.get("/{item_id}", response_model=InventoryItemResponse)
def get_inventory_item(
    item_id: int,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return to_response(crud_inventory_item.get_item(db, item_id))


@router.post("", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    item_in: InventoryItemCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    item = crud_inventory_item.create_item(db, item_in=item_in, user_id=current_user.id)
    audit_log_action(
        db=db,
        user_id=current_user.id,
        action="INVENTORY_ITEM_CREATE",
        table_name="inventory",
        record_id=item.id,
        new_values=item_in.model_dump(mode="json"),
    )
    return to_response(crud_inventory_item.get_item(db, item.id))


@router.put("/{item_id}", response_model=InventoryItemResponse)
def update_inventory_item(
    item_id: int,
    item_in: InventoryItemUpdate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    item = crud_inventory_item.get_item(db, item_id)
    item = crud_inventory_item.update_item(db, item=item, item_in=item_in)
    audit_log_action(
        db=db,
        user_id=current_user.id,
        action="INVENTORY_ITEM_UPDATE",
        table_name="inventory",
        record_id=item.id,
        new_values=item_in.model_dump(mode="json", exclude_unset=True),
    )
    return to_response(item)


@router.delete("/{item_id}")
def delete_inventory_item(
    item_id: int,
    current_user: models.User = Depends(require_manager_or_admin),
    db: Session = Depends(get_db)
):
    """Soft delete: sales and movements keep referencing the row"""
    item = crud_inventory_item.get_item(db, item_id)
    crud_inventory_item.soft_delete(db, db_obj=item)
    audit_log_action(db=db, user_id=current_user.id, action="INVENTORY_ITEM_DELETE",
                     table_name="inventory", record_id=item_id)
    return {"message": "Inventory item deleted successfully"}


# ====================
# STOCK LEDGER
# ====================

@router.post("/stock-movement", response_model=StockMovementResult, status_code=status.HTTP_201_CREATED)
def create_stock_movement(
    movement_in: StockMovementCreate,
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    return record_stock_movement(
        db,
        inventory_id=movement_in.inventory_id,
        movement_type=movement_in.movement_type,
        quantity=movement_in.quantity,
        unit_cost=movement_in.unit_cost,
        reference_number=movement_in.reference_number,
        notes=movement_in.notes,
        user_id=current_user.id,
    )


@router.get("/{item_id}/movements", response_model=List[StockMovementRecord])
def item_movements(
    item_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: models.User = Depends(require_staff_or_higher),
    db: Session = Depends(get_db)
):
    """Ledger for one item, newest first"""
    crud_inventory_item.get_item(db, item_id)
    return stock_ledger.list_for_item(db, item_id, skip=skip, limit=limit)
