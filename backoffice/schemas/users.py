"""
User (admin / worker) schemas.
"""
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Dict, Optional, List
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    STAFF = "staff"
    WORKER = "worker"


class WorkerCreate(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    role: Role = Role.STAFF
    phone: Optional[str] = None


class WorkerUpdate(BaseModel):
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[Role] = None
    phone: Optional[str] = None
    is_active: Optional[bool] = None


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    role: Role
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


class UserListResponse(BaseModel):
    users: List[UserResponse]
    count: int


class WorkerStats(BaseModel):
    total_workers: int
    recent_registrations: int
    role_distribution: Dict[str, int]


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse
