from pydantic import BaseModel, EmailStr, Field, model_validator
from typing import Optional, List
from datetime import datetime

from app.core.schemas import PageMeta


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    password_confirmation: str
    roles: Optional[List[str]] = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password != self.password_confirmation:
            raise ValueError("The password field confirmation does not match.")
        return self


class UserUpdate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: Optional[str] = None
    password_confirmation: Optional[str] = None
    roles: Optional[List[str]] = None

    @model_validator(mode="after")
    def passwords_match(self):
        if self.password and self.password != self.password_confirmation:
            raise ValueError("The password field confirmation does not match.")
        return self


class UserRole(BaseModel):
    id: int
    name: str
    guard: str


class UserResponse(BaseModel):
    id: str
    name: str
    email: str
    avatar: str
    avatar_small: str
    provider: Optional[str] = None
    roles: List[UserRole] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class UserDetailResponse(UserResponse):
    permissions: List[str] = []
    is_super_admin: bool = False


class UserPage(BaseModel):
    data: List[UserResponse]
    meta: PageMeta


class SocialLinkRequest(BaseModel):
    provider_id: str
    email: EmailStr
    name: Optional[str] = None
