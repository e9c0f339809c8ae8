"""
Base CRUD operations with SQLAlchemy 2.x patterns.
- only 2.x syntax: select(), update()
- storage failures roll back and surface as PersistenceError
- unique violations surface as ConflictError
"""
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError, IntegrityError
from sqlalchemy.orm import Session
import logging
from typing import TypeVar, Generic, Type, Optional, List, Dict, Any, Tuple

from backoffice.database import Base
from backoffice.exceptions import ConflictError, NotFoundError, PersistenceError

logger = logging.getLogger(__name__)
ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    resource_name = "Record"

    def __init__(self, model: Type[ModelType]):
        self.model = model

    def get(self, db: Session, id: int) -> Optional[ModelType]:
        """Get record by ID using SQLAlchemy 2.x select()"""
        try:
            stmt = select(self.model).where(self.model.id == id)
            return db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error getting {self.model.__name__} {id}: {e}")
            raise PersistenceError() from e

    def get_active(self, db: Session, id: int) -> ModelType:
        """Get an active record or raise NotFoundError"""
        obj = self.get(db, id)
        if obj is None or not getattr(obj, "is_active", True):
            raise NotFoundError(self.resource_name, id)
        return obj

    def get_multi(
        self, db: Session, *, filters: Optional[list] = None, order_by=None, skip: int = 0, limit: int = 100
    ) -> Tuple[List[ModelType], int]:
        """Page through records; returns (rows, total matching)"""
        try:
            stmt = select(self.model)
            count_stmt = select(func.count()).select_from(self.model)
            for condition in filters or []:
                stmt = stmt.where(condition)
                count_stmt = count_stmt.where(condition)
            if order_by is not None:
                stmt = stmt.order_by(order_by)
            total = db.execute(count_stmt).scalar_one()
            rows = db.execute(stmt.offset(skip).limit(limit)).scalars().all()
            return list(rows), total
        except SQLAlchemyError as e:
            logger.error(f"Error getting multiple {self.model.__name__}: {e}")
            raise PersistenceError() from e

    def create(self, db: Session, *, obj_in: Dict[str, Any]) -> ModelType:
        """Insert one row and commit"""
        try:
            obj = self.model(**obj_in)
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return obj
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Integrity error creating {self.model.__name__}: {e}")
            raise ConflictError(f"{self.resource_name} conflicts with an existing record") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error creating {self.model.__name__}: {e}")
            raise PersistenceError() from e

    def update(self, db: Session, *, db_obj: ModelType, obj_in: Dict[str, Any]) -> ModelType:
        """Apply the given fields and commit"""
        try:
            for field, value in obj_in.items():
                setattr(db_obj, field, value)
            db.commit()
            db.refresh(db_obj)
            return db_obj
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Integrity error updating {self.model.__name__} {db_obj.id}: {e}")
            raise ConflictError(f"{self.resource_name} conflicts with an existing record") from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error updating {self.model.__name__} {db_obj.id}: {e}")
            raise PersistenceError() from e

    def soft_delete(self, db: Session, *, db_obj: ModelType) -> ModelType:
        """Mark inactive. Rows are never physically removed."""
        return self.update(db, db_obj=db_obj, obj_in={"is_active": False})
