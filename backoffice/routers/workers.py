"""
Worker account management. Managers can look, only admins can change.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Optional

from backoffice.database import get_db
from backoffice.security import require_admin, require_manager_or_admin, audit_log_action
from backoffice import models
from backoffice.crud.users import crud_user
from backoffice.exceptions import NotFoundError
from backoffice.schemas.users import Role, UserListResponse, UserResponse, WorkerCreate, WorkerStats, WorkerUpdate

router = APIRouter(prefix="/workers", tags=["workers"])


@router.get("", response_model=UserListResponse)
def list_workers(
    search: Optional[str] = None,
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    current_user: models.User = Depends(require_manager_or_admin),
    db: Session = Depends(get_db)
):
    users, total = crud_user.list_users(db, search=search, role=role, is_active=is_active, skip=skip, limit=limit)
    return UserListResponse(users=users, count=total)


@router.get("/stats/overview", response_model=WorkerStats)
def worker_stats(
    current_user: models.User = Depends(require_manager_or_admin),
    db: Session = Depends(get_db)
):
    return crud_user.stats_overview(db)


@router.get("/{user_id}", response_model=UserResponse)
def get_worker(
    user_id: int,
    current_user: models.User = Depends(require_manager_or_admin),
    db: Session = Depends(get_db)
):
    return crud_user.get_active(db, user_id)


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_worker(
    user_in: WorkerCreate,
    current_user: models.User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = crud_user.create_user(db, user_in=user_in)
    audit_log_action(
        db=db,
        user_id=current_user.id,
        action="USER_CREATE",
        table_name="users",
        record_id=user.id,
        new_values={"email": user.email, "role": user.role},
        notes=f"Admin {current_user.email} created user {user.email}"
    )
    return user


@router.put("/{user_id}", response_model=UserResponse)
def update_worker(
    user_id: int,
    user_in: WorkerUpdate,
    current_user: models.User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = crud_user.get(db, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    old_values = {"role": user.role, "is_active": user.is_active}
    user = crud_user.update_user(db, user=user, user_in=user_in, acting_user_id=current_user.id)
    audit_log_action(
        db=db,
        user_id=current_user.id,
        action="USER_UPDATE",
        table_name="users",
        record_id=user.id,
        old_values=old_values,
        new_values=user_in.model_dump(mode="json", exclude_unset=True),
    )
    return user


@router.delete("/{user_id}")
def deactivate_worker(
    user_id: int,
    current_user: models.User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    user = crud_user.get_active(db, user_id)
    crud_user.deactivate(db, user=user, acting_user_id=current_user.id)
    audit_log_action(db=db, user_id=current_user.id, action="USER_DEACTIVATE", table_name="users",
                     record_id=user_id, notes=f"Admin {current_user.email} deactivated {user.email}")
    return {"message": "Worker deactivated successfully"}
