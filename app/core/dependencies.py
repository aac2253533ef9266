"""
Core dependencies for route protection and permission checking
"""

from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from app.config.settings import settings
from app.database.supabase_client import get_supabase
from app.modules.auth.service import AuthService
from app.modules.roles.models import PERMISSIONS_TABLE, ROLES_TABLE, ROLE_PERMISSIONS_TABLE
from app.modules.users.models import USERS_TABLE, USER_ROLES_TABLE
from supabase import Client
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def _get_request_cache(request: Request) -> Dict[str, Any]:
    """Return request-scoped cache for access data (roles, permission_names)."""
    if not hasattr(request.state, "access_cache"):
        request.state.access_cache = {}
    return request.state.access_cache


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> dict:
    """Extract current user info from JWT token"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return auth_service.get_current_user(credentials.credentials)


def get_user_roles(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[dict]:
    """Return the default-guard roles of an active user. Trashed or unknown users have none."""
    if cache is not None and "roles" in cache:
        return cache["roles"]
    try:
        user_result = supabase.table(USERS_TABLE)\
            .select("id")\
            .eq("id", user_id)\
            .is_("deleted_at", "null")\
            .execute()
        roles: List[dict] = []
        if user_result.data:
            links = supabase.table(USER_ROLES_TABLE)\
                .select("role_id")\
                .eq("user_id", user_id)\
                .execute()
            role_ids = [link["role_id"] for link in links.data or []]
            if role_ids:
                roles_result = supabase.table(ROLES_TABLE)\
                    .select("id, name, guard")\
                    .in_("id", role_ids)\
                    .eq("guard", settings.default_guard)\
                    .execute()
                roles = roles_result.data or []
        if cache is not None:
            cache["roles"] = roles
        return roles
    except Exception as e:
        logger.error(f"Error getting user roles: {e}")
        return []


def get_user_permissions(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> List[str]:
    """Get all permission names for a user through their roles. Populates request-scoped cache when provided."""
    if cache is not None and "permission_names" in cache:
        return cache["permission_names"]
    try:
        role_ids = [role["id"] for role in get_user_roles(user_id, supabase, cache)]
        names: List[str] = []
        if role_ids:
            links = supabase.table(ROLE_PERMISSIONS_TABLE)\
                .select("permission_id")\
                .in_("role_id", role_ids)\
                .execute()
            permission_ids = list({link["permission_id"] for link in links.data or []})
            if permission_ids:
                permissions_result = supabase.table(PERMISSIONS_TABLE)\
                    .select("name")\
                    .in_("id", permission_ids)\
                    .execute()
                names = sorted({p["name"] for p in permissions_result.data or []})
        if cache is not None:
            cache["permission_names"] = names
        return names
    except Exception as e:
        logger.error(f"Error getting user permissions: {e}")
        return []


def is_super_user(user_id: str, supabase: Client, cache: Optional[Dict[str, Any]] = None) -> bool:
    """Check if user holds a core role (super-admin), which passes every permission check"""
    core_roles = settings.get_core_roles()
    return any(role["name"] in core_roles for role in get_user_roles(user_id, supabase, cache))


def require_permission(required_permission: str):
    """Factory function to create permission check dependency"""
    def check_permission(
        request: Request,
        user_data: dict = Depends(get_current_user_id),
        supabase: Client = Depends(get_supabase)
    ) -> dict:
        """Dependency to check if user has required permission"""
        user_id = user_data["id"]
        cache = _get_request_cache(request)
        if is_super_user(user_id, supabase, cache):
            return user_data
        user_permissions = get_user_permissions(user_id, supabase, cache)
        if required_permission not in user_permissions:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {required_permission}"
            )
        return user_data
    return check_permission


def get_access_cache(request: Request) -> Dict[str, Any]:
    """Dependency that returns request-scoped access cache (populated by require_permission when used)."""
    return _get_request_cache(request)


def ensure_not_self(user_data: dict, target_user_id: str, action: str) -> None:
    """Single-entity user operations never apply to the acting user"""
    if str(user_data["id"]) == str(target_user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"You cannot {action} yourself."
        )
