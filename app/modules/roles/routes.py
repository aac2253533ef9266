from fastapi import APIRouter, Body, Depends, Query
from app.database.supabase_client import get_supabase
from app.core.schemas import BulkIdsRequest, BulkActionResponse
from app.modules.roles.schemas import (
    PermissionCreate, PermissionUpdate, PermissionResponse, PermissionWithRolesResponse,
    MergedPermissionPage, MergedPermissionResponse,
    RoleCreate, RoleUpdate, RoleWithPermissionsResponse, RoleDetailsResponse, MergedRolePage
)
from app.modules.roles.service import RoleService, PermissionService
from app.core.dependencies import require_permission
from supabase import Client
from typing import List, Optional, Dict

router = APIRouter(prefix="/admin/roles", tags=["roles"])
permissions_router = APIRouter(prefix="/admin/permissions", tags=["permissions"])


def get_role_service(supabase: Client = Depends(get_supabase)) -> RoleService:
    return RoleService(supabase)


def get_permission_service(supabase: Client = Depends(get_supabase)) -> PermissionService:
    return PermissionService(supabase)


# Permission endpoints
@permissions_router.get("", response_model=MergedPermissionPage)
async def list_permissions(
    filter: str = "all",
    per_page: str = Query("10", alias="perPage"),
    page: str = "1",
    search: Optional[str] = None,
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """List permissions merged by name across guards"""
    return service.list_permissions(filter=filter, per_page=per_page, page=page, search=search)


@permissions_router.post("", response_model=List[PermissionWithRolesResponse], status_code=201)
async def create_permission(
    permission_data: PermissionCreate,
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """Create a permission for each requested guard"""
    return service.create_permission(permission_data)


@permissions_router.delete("/bulk", response_model=BulkActionResponse)
async def bulk_delete_permissions(
    bulk_data: BulkIdsRequest = Body(...),
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete several permissions; core permissions are kept"""
    return service.delete_permissions(bulk_data.ids)


@permissions_router.get("/{permission_id}", response_model=MergedPermissionResponse)
async def get_permission(
    permission_id: int,
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """Get permission merged across guards, with roles"""
    return service.get_permission_details(permission_id)


@permissions_router.put("/{permission_id}", response_model=PermissionWithRolesResponse)
async def update_permission(
    permission_id: int,
    permission_data: PermissionUpdate,
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """Rename in every guard and sync roles (missing roles clears them)"""
    return service.update_permission(permission_id, permission_data)


@permissions_router.delete("/{ids}", response_model=BulkActionResponse)
async def delete_permissions(
    ids: str,
    user_data: Dict = Depends(require_permission("manage permissions")),
    service: PermissionService = Depends(get_permission_service)
):
    """Delete one permission or a comma separated list of ids"""
    return service.delete_permissions(ids)


# Role endpoints
@router.get("", response_model=MergedRolePage)
async def list_roles(
    filter: str = "all",
    per_page: str = Query("10", alias="perPage"),
    page: str = "1",
    search: Optional[str] = None,
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """List roles merged by name across guards"""
    return service.list_roles(filter=filter, per_page=per_page, page=page, search=search)


@router.get("/permissions", response_model=Dict[str, List[PermissionResponse]])
async def get_grouped_permissions(
    user_data: Dict = Depends(require_permission("manage roles")),
    supabase: Client = Depends(get_supabase)
):
    """All permissions grouped by guard (role create/edit form data)"""
    return PermissionService(supabase).group_by_guard()


@router.post("", response_model=List[RoleWithPermissionsResponse], status_code=201)
async def create_role(
    role_data: RoleCreate,
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """Create a new role"""
    return service.create_role(role_data)


@router.delete("/bulk", response_model=BulkActionResponse)
async def bulk_delete_roles(
    bulk_data: BulkIdsRequest = Body(...),
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """Delete several roles; the super-admin role is kept"""
    return service.delete_roles(bulk_data.ids)


@router.get("/{role_id}", response_model=RoleDetailsResponse)
async def get_role(
    role_id: int,
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """Get role merged across guards"""
    return service.get_role_details(role_id)


@router.put("/{role_id}", response_model=RoleWithPermissionsResponse)
async def update_role(
    role_id: int,
    role_data: RoleUpdate,
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """Update role name and per-guard permissions across all guards"""
    return service.update_role(role_id, role_data)


@router.delete("/{ids}", response_model=BulkActionResponse)
async def delete_roles(
    ids: str,
    user_data: Dict = Depends(require_permission("manage roles")),
    service: RoleService = Depends(get_role_service)
):
    """Delete one role or a comma separated list of ids"""
    return service.delete_roles(ids)
