"""
Inventory CRUD and the stock adjuster:
- current_stock is only changed through record_stock_movement() or a sale
- every stock change appends exactly one stock_movements row
- the movement and the new stock level commit together or not at all
- stock never goes below zero
"""
from sqlalchemy import select, func, or_
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session, selectinload
import logging
from typing import List, Optional, Tuple
from datetime import date, datetime, timezone
from decimal import Decimal

from backoffice.models import InventoryItem, StockMovement
from backoffice.crud.base import CRUDBase
from backoffice.crud.catalog import crud_category, crud_supplier
from backoffice.exceptions import (
    BackofficeError, ConflictError, InsufficientStockError, NotFoundError, PersistenceError,
)
from backoffice.schemas.inventory import (
    InventoryItemCreate, InventoryItemUpdate, MovementType, StockMovementRecord, StockMovementResult,
)
from backoffice.utils.periods import day_bounds

logger = logging.getLogger(__name__)


class CRUDInventoryItem(CRUDBase[InventoryItem]):
    resource_name = "Inventory item"

    def __init__(self):
        super().__init__(InventoryItem)

    def get_by_sku(self, db: Session, sku: str) -> Optional[InventoryItem]:
        try:
            stmt = select(InventoryItem).where(InventoryItem.sku == sku)
            return db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting inventory item by SKU {sku}: {e}")
            raise PersistenceError() from e

    def get_item(self, db: Session, id: int) -> InventoryItem:
        """Active item with category and supplier loaded"""
        stmt = (
            select(InventoryItem)
            .options(selectinload(InventoryItem.category), selectinload(InventoryItem.supplier))
            .where(InventoryItem.id == id, InventoryItem.is_active.is_(True))
        )
        item = db.execute(stmt).scalar_one_or_none()
        if item is None:
            raise NotFoundError(self.resource_name, id)
        return item

    def list_items(
        self,
        db: Session,
        *,
        search: Optional[str] = None,
        category_id: Optional[int] = None,
        supplier_id: Optional[int] = None,
        low_stock: bool = False,
        skip: int = 0,
        limit: int = 50,
    ) -> Tuple[List[InventoryItem], int]:
        """Active items, filtered; returns (page, total matching)"""
        conditions = [InventoryItem.is_active.is_(True)]
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    InventoryItem.name.ilike(pattern),
                    InventoryItem.sku.ilike(pattern),
                    InventoryItem.barcode.ilike(pattern),
                )
            )
        if category_id is not None:
            conditions.append(InventoryItem.category_id == category_id)
        if supplier_id is not None:
            conditions.append(InventoryItem.supplier_id == supplier_id)
        if low_stock:
            conditions.append(InventoryItem.current_stock <= InventoryItem.minimum_stock)

        try:
            total = db.execute(
                select(func.count()).select_from(InventoryItem).where(*conditions)
            ).scalar_one()
            stmt = (
                select(InventoryItem)
                .options(selectinload(InventoryItem.category), selectinload(InventoryItem.supplier))
                .where(*conditions)
                .order_by(InventoryItem.name, InventoryItem.id)
                .offset(skip)
                .limit(limit)
            )
            return list(db.execute(stmt).scalars().all()), total
        except SQLAlchemyError as e:
            logger.error(f"Error listing inventory items: {e}")
            raise PersistenceError() from e

    def _check_references(self, db: Session, category_id: Optional[int], supplier_id: Optional[int]) -> None:
        if category_id is not None:
            crud_category.get_active(db, category_id)
        if supplier_id is not None:
            crud_supplier.get_active(db, supplier_id)

    def create_item(self, db: Session, *, item_in: InventoryItemCreate, user_id: int) -> InventoryItem:
        """
        Create an item. A positive opening stock is written as an "in" movement
        in the same transaction so the ledger accounts for every unit.
        """
        if item_in.sku and self.get_by_sku(db, item_in.sku):
            raise ConflictError("SKU already exists")
        self._check_references(db, item_in.category_id, item_in.supplier_id)

        data = item_in.model_dump()
        opening_stock = data.pop("current_stock")
        try:
            item = InventoryItem(**data, current_stock=opening_stock, created_by=user_id)
            db.add(item)
            db.flush()
            if opening_stock > 0:
                stock_ledger.append(
                    db,
                    inventory_id=item.id,
                    movement_type=MovementType.IN,
                    quantity=opening_stock,
                    unit_cost=item_in.cost_price,
                    notes="Opening stock",
                    created_by=user_id,
                )
            db.commit()
            db.refresh(item)
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Integrity error creating inventory item: {e}")
            raise ConflictError("SKU already exists") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error creating inventory item: {e}")
            raise PersistenceError() from e

        logger.info(f"Inventory item {item.id} created by user {user_id}")
        return item

    def update_item(self, db: Session, *, item: InventoryItem, item_in: InventoryItemUpdate) -> InventoryItem:
        """Edit descriptive fields. Stock levels are not editable here."""
        data = item_in.model_dump(exclude_unset=True)
        if data.get("sku"):
            existing = self.get_by_sku(db, data["sku"])
            if existing and existing.id != item.id:
                raise ConflictError("SKU already exists")
        self._check_references(db, data.get("category_id"), data.get("supplier_id"))
        data["updated_at"] = datetime.now(timezone.utc)
        return self.update(db, db_obj=item, obj_in=data)


class StockLedger:
    """Append-only stock ledger: rows are added and read, never changed or removed."""

    def append(
        self,
        db: Session,
        *,
        inventory_id: int,
        movement_type: MovementType,
        quantity: Decimal,
        unit_cost: Optional[Decimal] = None,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> StockMovement:
        """Add one ledger row to the caller's transaction (flushed, not committed)"""
        movement = StockMovement(
            inventory_id=inventory_id,
            movement_type=MovementType(movement_type).value,
            quantity=quantity,
            unit_cost=unit_cost,
            reference_number=reference_number,
            notes=notes,
            created_by=created_by,
            created_at=datetime.now(timezone.utc),
        )
        db.add(movement)
        db.flush()
        return movement

    def list_for_item(self, db: Session, inventory_id: int, *, skip: int = 0, limit: int = 100) -> List[StockMovement]:
        """Ledger for one item, newest first"""
        rows, _ = self.list_movements(db, inventory_id=inventory_id, skip=skip, limit=limit)
        return rows

    def list_movements(
        self,
        db: Session,
        *,
        inventory_id: Optional[int] = None,
        movement_type: Optional[MovementType] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[StockMovement], int]:
        filters = []
        if inventory_id is not None:
            filters.append(StockMovement.inventory_id == inventory_id)
        if movement_type is not None:
            filters.append(StockMovement.movement_type == MovementType(movement_type).value)
        lower, upper = day_bounds(start, end)
        if lower is not None:
            filters.append(StockMovement.created_at >= lower)
        if upper is not None:
            filters.append(StockMovement.created_at < upper)
        try:
            total = db.execute(select(func.count()).select_from(StockMovement).where(*filters)).scalar_one()
            stmt = select(StockMovement).where(*filters).order_by(StockMovement.id.desc()).offset(skip).limit(limit)
            return list(db.execute(stmt).scalars().all()), total
        except SQLAlchemyError as e:
            logger.error(f"Error listing stock movements: {e}")
            raise PersistenceError() from e


crud_inventory_item = CRUDInventoryItem()
stock_ledger = StockLedger()


def lock_item(db: Session, inventory_id: int) -> InventoryItem:
    stmt = (
        select(InventoryItem)
        .where(InventoryItem.id == inventory_id, InventoryItem.is_active.is_(True))
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    item = db.execute(stmt).scalar_one_or_none()
    if item is None:
        raise NotFoundError("Inventory item", inventory_id)
    return item


def compute_new_stock(current: Decimal, movement_type: MovementType, quantity: Decimal) -> Decimal:
    """
    in: add |q|. out and transfer: subtract |q|.
    adjustment: q is the new absolute level (a physical count), not a delta.
    """
    movement_type = MovementType(movement_type)
    if movement_type == MovementType.IN:
        return current + abs(quantity)
    if movement_type in (MovementType.OUT, MovementType.TRANSFER):
        return current - abs(quantity)
    return quantity


def record_stock_movement(
    db: Session,
    *,
    inventory_id: int,
    movement_type: MovementType,
    quantity: Decimal,
    unit_cost: Optional[Decimal] = None,
    reference_number: Optional[str] = None,
    notes: Optional[str] = None,
    user_id: Optional[int] = None,
) -> StockMovementResult:
    """
    Apply one quantity change to one item and record it in the ledger.

    The item row is locked for the rest of the transaction, so concurrent
    adjustments and sales on the same item are serialised.

    Raises NotFoundError, InsufficientStockError or PersistenceError. On any
    of them the transaction is rolled back and nothing is written.
    """
    quantity = Decimal(str(quantity))
    try:
        item = lock_item(db, inventory_id)
        previous_stock = Decimal(item.current_stock)
        new_stock = compute_new_stock(previous_stock, movement_type, quantity)
        if new_stock < 0:
            raise InsufficientStockError(item.name, previous_stock, abs(quantity))

        movement = stock_ledger.append(
            db,
            inventory_id=item.id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost=unit_cost,
            reference_number=reference_number,
            notes=notes,
            created_by=user_id,
        )
        item.current_stock = new_stock
        item.updated_at = datetime.now(timezone.utc)
        db.commit()
    except BackofficeError as e:
        db.rollback()
        logger.warning(f"Stock movement rejected for item {inventory_id}: {e.message}")
        raise
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error recording stock movement for item {inventory_id}: {e}")
        raise PersistenceError() from e

    logger.info(
        f"Stock movement {movement.id} ({MovementType(movement_type).value}) on item {inventory_id}: "
        f"{previous_stock} -> {new_stock}"
    )
    return StockMovementResult(
        previous_stock=previous_stock,
        new_stock=new_stock,
        movement=StockMovementRecord.model_validate(movement),
    )
