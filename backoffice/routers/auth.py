"""
Authentication routes: login, current user, password change, logout.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from typing import Dict, Any

from backoffice.database import get_db
from backoffice import models
from backoffice.crud.users import crud_user
from backoffice.schemas.users import PasswordChange, TokenResponse, UserResponse
from backoffice.security import create_access_token, get_current_user, audit_log_action

router = APIRouter(prefix="/auth", tags=["authentication"])


@router.post("/login", response_model=TokenResponse)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """OAuth2 compatible token login; the username field carries the email."""
    user = crud_user.authenticate(db, form_data.username, form_data.password)
    if user is None:
        audit_log_action(
            db=db,
            user_id=None,
            action="LOGIN_FAILED",
            notes=f"Failed login attempt for {form_data.username}"
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        audit_log_action(
            db=db,
            user_id=user.id,
            action="LOGIN_DENIED_INACTIVE",
            notes=f"Inactive user attempted login: {user.email}"
        )
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Inactive user"
        )

    user = crud_user.touch_login(db, user)
    access_token = create_access_token(data={"sub": user.email, "role": user.role})
    audit_log_action(db=db, user_id=user.id, action="LOGIN_SUCCESS", notes=f"User {user.email} logged in")

    return TokenResponse(access_token=access_token, user=UserResponse.model_validate(user))


@router.get("/me", response_model=UserResponse)
def read_users_me(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.put("/change-password")
def change_password(
    body: PasswordChange,
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Change password for the authenticated user"""
    crud_user.change_password(
        db, user=current_user, current_password=body.current_password, new_password=body.new_password
    )
    audit_log_action(
        db=db,
        user_id=current_user.id,
        action="PASSWORD_CHANGE_SUCCESS",
        table_name="users",
        record_id=current_user.id,
        notes="User changed password"
    )
    return {"message": "Password updated successfully"}


@router.post("/logout")
def logout(
    current_user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """Tokens are stateless; logout is recorded for the audit trail only."""
    audit_log_action(db=db, user_id=current_user.id, action="LOGOUT", notes=f"User {current_user.email} logged out")
    return {"message": "Successfully logged out"}
