"""
Authentication and authorization:
- JWT bearer tokens via python-jose[cryptography]
- password hashing via passlib[bcrypt]
- role checks on the server (admin > manager > staff > worker)
- administrative actions are written to audit_logs
"""
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Sequence
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from backoffice.config import settings
from backoffice.database import get_db
from backoffice import models

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

security = HTTPBearer()


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token"""
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "iat": now})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and verify JWT token; None when invalid or expired"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> models.User:
    """Resolve the bearer token to an active user"""
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _unauthorized("Invalid authentication credentials")

    email = payload.get("sub")
    if email is None:
        logger.warning("JWT token missing 'sub' claim")
        raise _unauthorized("Invalid authentication credentials")

    user = db.execute(select(models.User).where(models.User.email == email)).scalar_one_or_none()
    if user is None:
        logger.warning(f"User not found: {email}")
        raise _unauthorized("User not found")
    if not user.is_active:
        logger.warning(f"Inactive user presented a token: {email}")
        raise _unauthorized("Inactive user")
    return user


def require_roles(*roles: str, detail: str = "Insufficient permissions"):
    """Dependency factory: the current user must hold one of `roles`"""
    allowed: Sequence[str] = roles

    def checker(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role not in allowed:
            logger.warning(f"User {current_user.email} ({current_user.role}) denied; needs one of {allowed}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return current_user

    return checker


require_admin = require_roles("admin", detail="Admin privileges required")
require_manager_or_admin = require_roles("admin", "manager", detail="Manager or admin privileges required")
require_staff_or_higher = require_roles("admin", "manager", "staff")


def audit_log_action(
    db: Session,
    user_id: Optional[int],
    action: str,
    table_name: Optional[str] = None,
    record_id: Optional[int] = None,
    old_values: Optional[Dict] = None,
    new_values: Optional[Dict] = None,
    notes: Optional[str] = None,
) -> None:
    """
    Create audit log entry. Runs after the main operation has committed and
    never raises: an audit failure must not undo or fail the action itself.
    """
    try:
        db.add(
            models.AuditLog(
                user_id=user_id,
                action=action,
                table_name=table_name,
                record_id=record_id,
                old_values=old_values,
                new_values=new_values,
                notes=notes,
            )
        )
        db.commit()
        logger.info(f"Audit log created: {action} by user {user_id}")
    except SQLAlchemyError as e:
        logger.error(f"Failed to create audit log: {e}")
        db.rollback()
