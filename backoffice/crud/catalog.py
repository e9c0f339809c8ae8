"""
Categories and suppliers. Both are soft-deleted, and only once no active
inventory item points at them.
"""
from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from typing import Optional, List, Tuple

from backoffice.models import Category, Supplier, InventoryItem
from backoffice.crud.base import CRUDBase
from backoffice.exceptions import ConflictError, ValidationError, PersistenceError
from backoffice.schemas.catalog import (
    CategoryCreate, CategoryItemCount, CategoryLowStock, CategoryStats, CategoryUpdate, SupplierCreate, SupplierUpdate,
)

logger = logging.getLogger(__name__)

TOP_CATEGORIES_LIMIT = 5


def _active_item_count(db: Session, column, value: int) -> int:
    try:
        stmt = (
            select(func.count())
            .select_from(InventoryItem)
            .where(column == value, InventoryItem.is_active.is_(True))
        )
        return db.execute(stmt).scalar_one()
    except SQLAlchemyError as e:
        logger.error(f"Error counting items for {column.key}={value}: {e}")
        raise PersistenceError() from e


class CRUDCategory(CRUDBase[Category]):
    resource_name = "Category"

    def __init__(self):
        super().__init__(Category)

    def get_by_name(self, db: Session, name: str) -> Optional[Category]:
        stmt = select(Category).where(func.lower(Category.name) == name.lower(), Category.is_active.is_(True))
        return db.execute(stmt).scalars().first()

    def list_active(self, db: Session, *, search: Optional[str] = None) -> List[Tuple[Category, int]]:
        """Active categories with the number of active items in each"""
        try:
            item_count = (
                select(func.count(InventoryItem.id))
                .where(InventoryItem.category_id == Category.id, InventoryItem.is_active.is_(True))
                .correlate(Category)
                .scalar_subquery()
            )
            stmt = select(Category, item_count).where(Category.is_active.is_(True))
            if search:
                stmt = stmt.where(Category.name.ilike(f"%{search}%"))
            stmt = stmt.order_by(Category.name)
            return [(row[0], row[1]) for row in db.execute(stmt).all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing categories: {e}")
            raise PersistenceError() from e

    def create_category(self, db: Session, *, category_in: CategoryCreate, user_id: int) -> Category:
        if self.get_by_name(db, category_in.name):
            raise ConflictError("Category name already exists")
        data = category_in.model_dump()
        data["created_by"] = user_id
        return self.create(db, obj_in=data)

    def update_category(self, db: Session, *, category: Category, category_in: CategoryUpdate) -> Category:
        data = category_in.model_dump(exclude_unset=True)
        if "name" in data and data["name"]:
            existing = self.get_by_name(db, data["name"])
            if existing and existing.id != category.id:
                raise ConflictError("Category name already exists")
        return self.update(db, db_obj=category, obj_in=data)

    def delete_category(self, db: Session, *, category: Category) -> Category:
        if _active_item_count(db, InventoryItem.category_id, category.id):
            raise ValidationError("Cannot delete category with active inventory items")
        return self.soft_delete(db, db_obj=category)

    def stats_overview(self, db: Session) -> CategoryStats:
        """Active category count, the five fullest categories and where stock runs low"""
        item_count = func.count(InventoryItem.id).label("item_count")
        low_count = func.count(InventoryItem.id).label("low_stock_items")
        try:
            total = db.execute(
                select(func.count()).select_from(Category).where(Category.is_active.is_(True))
            ).scalar_one()
            top = db.execute(
                select(Category.name, Category.color, item_count)
                .outerjoin(
                    InventoryItem,
                    and_(InventoryItem.category_id == Category.id, InventoryItem.is_active.is_(True)),
                )
                .where(Category.is_active.is_(True))
                .group_by(Category.id, Category.name, Category.color)
                .order_by(item_count.desc(), Category.name)
                .limit(TOP_CATEGORIES_LIMIT)
            ).all()
            low = db.execute(
                select(Category.name, low_count)
                .join(InventoryItem, InventoryItem.category_id == Category.id)
                .where(
                    Category.is_active.is_(True),
                    InventoryItem.is_active.is_(True),
                    InventoryItem.current_stock <= InventoryItem.minimum_stock,
                )
                .group_by(Category.id, Category.name)
                .order_by(low_count.desc(), Category.name)
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error building category stats: {e}")
            raise PersistenceError() from e

        return CategoryStats(
            total_categories=total,
            top_categories=[CategoryItemCount(name=r.name, color=r.color, item_count=r.item_count) for r in top],
            low_stock_categories=[CategoryLowStock(name=r.name, low_stock_items=r.low_stock_items) for r in low],
        )


class CRUDSupplier(CRUDBase[Supplier]):
    resource_name = "Supplier"

    def __init__(self):
        super().__init__(Supplier)

    def list_active(
        self, db: Session, *, search: Optional[str] = None, skip: int = 0, limit: int = 100
    ) -> Tuple[List[Supplier], int]:
        filters = [Supplier.is_active.is_(True)]
        if search:
            pattern = f"%{search}%"
            filters.append(
                Supplier.name.ilike(pattern)
                | Supplier.contact_person.ilike(pattern)
                | Supplier.email.ilike(pattern)
            )
        return self.get_multi(db, filters=filters, order_by=Supplier.name, skip=skip, limit=limit)

    def create_supplier(self, db: Session, *, supplier_in: SupplierCreate, user_id: int) -> Supplier:
        data = supplier_in.model_dump()
        data["created_by"] = user_id
        return self.create(db, obj_in=data)

    def update_supplier(self, db: Session, *, supplier: Supplier, supplier_in: SupplierUpdate) -> Supplier:
        return self.update(db, db_obj=supplier, obj_in=supplier_in.model_dump(exclude_unset=True))

    def delete_supplier(self, db: Session, *, supplier: Supplier) -> Supplier:
        if _active_item_count(db, InventoryItem.supplier_id, supplier.id):
            raise ValidationError("Cannot delete supplier with active inventory items")
        return self.soft_delete(db, db_obj=supplier)


crud_category = CRUDCategory()
crud_supplier = CRUDSupplier()
