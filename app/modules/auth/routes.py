from fastapi import APIRouter, Depends, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials
from app.config.settings import settings
from app.database.supabase_client import get_supabase, get_service_supabase
from app.modules.auth.schemas import (
    LoginRequest, RegisterRequest, TokenResponse, RegisterResponse, MeResponse
)
from app.modules.auth.service import AuthService
from app.modules.users.schemas import SocialLinkRequest, UserResponse
from app.modules.users.service import UserService
from app.core.dependencies import (
    get_access_cache, get_current_user_id, get_user_permissions, get_user_roles, is_super_user, security
)
from app.config.permissions_config import get_permission_matrix
from supabase import Client
from typing import Dict, List, Optional

router = APIRouter(prefix="/auth", tags=["auth"])


def get_auth_service(supabase: Client = Depends(get_supabase)) -> AuthService:
    return AuthService(supabase)


def get_user_service(
    supabase: Client = Depends(get_supabase),
    admin: Client = Depends(get_service_supabase)
) -> UserService:
    return UserService(supabase, admin)


def get_current_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> str:
    """Extract JWT token from Authorization header"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return credentials.credentials


@router.post("/register", response_model=RegisterResponse, status_code=201)
async def register(
    register_data: RegisterRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Register a new user"""
    return service.register(register_data)


@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: LoginRequest,
    service: AuthService = Depends(get_auth_service)
):
    """Login and get access token"""
    return service.login(login_data)


@router.post("/logout", status_code=200)
async def logout(
    token: str = Depends(get_current_token),
    service: AuthService = Depends(get_auth_service)
):
    """Logout and invalidate token"""
    service.logout(token)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=MeResponse)
async def get_current_user(
    current_user: Dict = Depends(get_current_user_id),
    supabase: Client = Depends(get_supabase),
    cache: Dict = Depends(get_access_cache)
):
    """Get current authenticated user, their roles and permissions (for frontend UI)."""
    user_id = current_user["id"]
    roles = [role["name"] for role in get_user_roles(user_id, supabase, cache)]
    super_user = is_super_user(user_id, supabase, cache)
    if super_user:
        permissions: List[str] = [p["name"] for p in get_permission_matrix()["permissions"]]
    else:
        permissions = get_user_permissions(user_id, supabase, cache)
    return MeResponse(
        id=user_id,
        email=current_user.get("email"),
        roles=roles,
        permissions=permissions,
        is_super_admin=super_user
    )


@router.post("/social/{provider}/link", response_model=UserResponse)
async def link_social_account(
    provider: str,
    link_data: SocialLinkRequest,
    current_user: Dict = Depends(get_current_user_id),
    service: UserService = Depends(get_user_service)
):
    """Attach the OAuth identity of the signed-in user to its users row (created if missing)"""
    if provider not in settings.get_social_providers():
        raise HTTPException(status_code=404, detail="Unsupported provider")
    return service.link_social_user(
        current_user, provider, link_data.provider_id, link_data.email, link_data.name
    )
