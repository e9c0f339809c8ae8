"""
Admin and worker accounts share the users table; role decides access.
"""
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging
from typing import List, Optional, Tuple
from datetime import datetime, timedelta, timezone

from backoffice.models import User
from backoffice.crud.base import CRUDBase
from backoffice.exceptions import ConflictError, PersistenceError, ValidationError
from backoffice.schemas.users import WorkerCreate, WorkerStats, WorkerUpdate, Role
from backoffice.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

RECENT_REGISTRATION_DAYS = 30


class CRUDUser(CRUDBase[User]):
    resource_name = "User"

    def __init__(self):
        super().__init__(User)

    def get_by_email(self, db: Session, email: str) -> Optional[User]:
        stmt = select(User).where(func.lower(User.email) == email.lower())
        return db.execute(stmt).scalar_one_or_none()

    def authenticate(self, db: Session, email: str, password: str) -> Optional[User]:
        """User when the password matches, else None. Activity is checked by the caller."""
        user = self.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user

    def touch_login(self, db: Session, user: User) -> User:
        return self.update(db, db_obj=user, obj_in={"last_login": datetime.now(timezone.utc)})

    def list_users(
        self,
        db: Session,
        *,
        search: Optional[str] = None,
        role: Optional[Role] = None,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Tuple[List[User], int]:
        filters = []
        if search:
            pattern = f"%{search}%"
            filters.append(
                User.email.ilike(pattern) | User.first_name.ilike(pattern) | User.last_name.ilike(pattern)
            )
        if role is not None:
            filters.append(User.role == Role(role).value)
        if is_active is not None:
            filters.append(User.is_active.is_(is_active))
        return self.get_multi(db, filters=filters, order_by=User.id, skip=skip, limit=limit)

    def create_user(self, db: Session, *, user_in: WorkerCreate) -> User:
        if self.get_by_email(db, user_in.email):
            raise ConflictError("Email already registered")
        data = user_in.model_dump(exclude={"password"})
        data["role"] = Role(user_in.role).value
        data["password_hash"] = get_password_hash(user_in.password)
        return self.create(db, obj_in=data)

    def update_user(self, db: Session, *, user: User, user_in: WorkerUpdate, acting_user_id: int) -> User:
        data = user_in.model_dump(exclude_unset=True)
        if user.id == acting_user_id and data.get("is_active") is False:
            raise ValidationError("Cannot deactivate yourself")
        if data.get("role") is not None:
            data["role"] = Role(data["role"]).value
        return self.update(db, db_obj=user, obj_in=data)

    def deactivate(self, db: Session, *, user: User, acting_user_id: int) -> User:
        if user.id == acting_user_id:
            raise ValidationError("Cannot deactivate yourself")
        return self.soft_delete(db, db_obj=user)

    def change_password(self, db: Session, *, user: User, current_password: str, new_password: str) -> User:
        if not verify_password(current_password, user.password_hash):
            raise ValidationError("Current password is incorrect")
        return self.update(db, db_obj=user, obj_in={"password_hash": get_password_hash(new_password)})

    def ensure_admin(self, db: Session, email: Optional[str], password: Optional[str]) -> Optional[User]:
        """Create the bootstrap admin account once, when configured"""
        if not email or not password:
            return None
        existing = self.get_by_email(db, email)
        if existing:
            return existing
        user = self.create(
            db,
            obj_in={
                "email": email,
                "password_hash": get_password_hash(password),
                "first_name": "Admin",
                "last_name": "User",
                "role": Role.ADMIN.value,
            },
        )
        logger.info(f"Created default admin account {email}")
        return user

    def stats_overview(self, db: Session, now: Optional[datetime] = None) -> WorkerStats:
        """Active accounts, how many joined in the last 30 days, and the role split"""
        now = now or datetime.now(timezone.utc)
        active = User.is_active.is_(True)
        try:
            total = db.execute(select(func.count()).select_from(User).where(active)).scalar_one()
            recent = db.execute(
                select(func.count())
                .select_from(User)
                .where(active, User.created_at >= now - timedelta(days=RECENT_REGISTRATION_DAYS))
            ).scalar_one()
            roles = db.execute(
                select(User.role, func.count()).where(active).group_by(User.role).order_by(User.role)
            ).all()
        except SQLAlchemyError as e:
            logger.error(f"Error building worker stats: {e}")
            raise PersistenceError() from e
        return WorkerStats(
            total_workers=total,
            recent_registrations=recent,
            role_distribution={role: count for role, count in roles},
        )


crud_user = CRUDUser()
