from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from datetime import datetime

class UserBase(BaseModel):
    email: EmailStr
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)

class UserCreate(UserBase):
    password: str = Field(..., min_length=6)

class UserUpdate(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)

class UserProfile(UserBase):
    id: str
    is_admin: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class AuthResponse(BaseModel):
    access_token: str
    token_type: str
    user: UserProfile

class CallerContext(BaseModel):
    """Identity of the caller, passed explicitly into operations that need one"""
    user_id: str
    is_admin: bool = False

    @classmethod
    def from_user(cls, user) -> "CallerContext":
        return cls(user_id=user.id, is_admin=bool(user.is_admin))
