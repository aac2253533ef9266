from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime

from app.core.schemas import PageMeta


class PermissionCreate(BaseModel):
    name: str = Field(..., max_length=255)
    guards: Optional[List[str]] = None
    roles: Optional[List[str]] = None


class PermissionUpdate(BaseModel):
    name: str = Field(..., max_length=255)
    roles: Optional[List[str]] = None


class PermissionResponse(BaseModel):
    id: int
    name: str
    guard: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleSummary(BaseModel):
    id: int
    name: str
    guard: str


class PermissionWithRolesResponse(PermissionResponse):
    roles: List[RoleSummary] = []


class MergedPermissionResponse(BaseModel):
    id: int
    name: str
    guards: List[str]
    roles: List[RoleSummary]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoleCreate(BaseModel):
    name: str = Field(..., max_length=255)
    guards: Optional[List[str]] = None
    permissions: Optional[Dict[str, List[str]]] = None  # guard -> permission names


class RoleUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    permissions: Optional[Dict[str, List[str]]] = None


class RoleResponse(BaseModel):
    id: int
    name: str
    guard: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class RoleWithPermissionsResponse(RoleResponse):
    permissions: List[PermissionResponse] = []


class MergedRoleResponse(BaseModel):
    id: int
    name: str
    guards: List[str]
    permissions: List[PermissionResponse]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RoleDetailsResponse(MergedRoleResponse):
    permissions_by_guard: Dict[str, List[str]] = {}


class MergedRolePage(BaseModel):
    data: List[MergedRoleResponse]
    meta: PageMeta


class MergedPermissionPage(BaseModel):
    data: List[MergedPermissionResponse]
    meta: PageMeta

