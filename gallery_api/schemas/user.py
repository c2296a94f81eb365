"""
User-related Pydantic schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    """Base schema with common user attributes."""

    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr


class UserCreate(UserBase):
    """Schema for user creation by an administrator."""

    role: Literal["user", "admin"] = "user"


class UserResponse(BaseModel):
    """User metadata merged with the credentials email. Never carries the password."""

    id: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    role: str
    avatar: Optional[str] = None
    created_at: datetime
    modified_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserCreated(UserResponse):
    """Returned once, on creation."""

    initial_password: str


class UserList(BaseModel):
    data: List[UserResponse]
    count: int
    pages: int


class UserLogin(BaseModel):
    """Schema for user login."""

    email: EmailStr
    password: str = Field(..., min_length=10)


class LoginResponse(BaseModel):
    """Schema for the login response."""

    token: str
    user: UserResponse


class PasswordUpdate(BaseModel):
    """
    Password change body.

    Both fields are checked by the handler so that the error order
    (missing, equal, wrong current password, length) is preserved.
    """

    password: Optional[str] = None
    new_password: Optional[str] = None


class TokenPayload(BaseModel):
    """Schema for decoded JWT token payload."""

    sub: str
    exp: datetime
