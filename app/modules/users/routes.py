from fastapi import APIRouter, Body, Depends, Query
from app.database.supabase_client import get_supabase, get_service_supabase
from app.core.schemas import BulkIdsRequest, BulkActionResponse
from app.modules.users.schemas import (
    UserCreate, UserUpdate, UserResponse, UserDetailResponse, UserPage
)
from app.modules.users.service import UserService
from app.core.dependencies import require_permission, ensure_not_self
from supabase import Client
from typing import Dict, Optional

router = APIRouter(prefix="/admin/users", tags=["users"])


def get_user_service(
    supabase: Client = Depends(get_supabase),
    admin: Client = Depends(get_service_supabase)
) -> UserService:
    return UserService(supabase, admin)


@router.get("", response_model=UserPage)
async def list_users(
    filter: str = "withoutTrash",
    per_page: str = Query("10", alias="perPage"),
    page: str = "1",
    search: Optional[str] = None,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """List users; filter is one of withoutTrash, onlyTrash, withTrash, all"""
    return service.list_users(filter=filter, per_page=per_page, page=page, search=search)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    user_data_body: UserCreate,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Create a user with optional roles"""
    return service.create_user(user_data_body)


@router.delete("/bulk", response_model=BulkActionResponse)
async def bulk_delete_users(
    bulk_data: BulkIdsRequest = Body(...),
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Soft delete several users; the acting user is skipped"""
    return service.delete_users(bulk_data.ids, user_data["id"])


@router.post("/bulk/restore", response_model=BulkActionResponse)
async def bulk_restore_users(
    bulk_data: BulkIdsRequest = Body(...),
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Restore several trashed users"""
    return service.restore_users(bulk_data.ids)


@router.delete("/bulk/force-delete", response_model=BulkActionResponse)
async def bulk_force_delete_users(
    bulk_data: BulkIdsRequest = Body(...),
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Permanently delete several trashed users"""
    return service.force_delete_users(bulk_data.ids, user_data["id"])


@router.get("/{user_id}", response_model=UserDetailResponse)
async def get_user(
    user_id: str,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Get user with roles and effective permissions"""
    return service.get_user_by_id(user_id)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    user_data_body: UserUpdate,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Update another user"""
    ensure_not_self(user_data, user_id, "update")
    return service.update_user(user_id, user_data_body)


@router.delete("/{user_id}", status_code=204)
async def delete_user(
    user_id: str,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Soft delete another user"""
    ensure_not_self(user_data, user_id, "delete")
    service.delete_user(user_id)
    return None


@router.post("/{user_id}/restore", response_model=BulkActionResponse)
async def restore_user(
    user_id: str,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Restore one trashed user"""
    return service.restore_user(user_id)


@router.delete("/{user_id}/force-delete", response_model=BulkActionResponse)
async def force_delete_user(
    user_id: str,
    user_data: Dict = Depends(require_permission("manage users")),
    service: UserService = Depends(get_user_service)
):
    """Permanently delete one trashed user"""
    return service.force_delete_user(user_id, user_data["id"])
