from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Required for admin user management

    # Guards
    default_guard: str = "web"
    guards: str = "web,api"

    # Protected names (never deleted or renamed through the admin panel)
    core_permissions: str = (
        "view tokens,create tokens,edit tokens,delete tokens,"
        "manage users,manage roles,manage permissions,manage settings"
    )
    core_roles: str = "super-admin"

    # Listing
    per_page_options: str = "10,20,30,40,50"
    default_per_page: int = 10

    # Identity
    social_providers: str = "google,github,twitter"
    avatar_fallback_url: str = "https://ui-avatars.com/api/"
    login_url: str = "/login"
    home_url: str = "/dashboard"

    # App
    app_name: str = "rbac-admin-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return _split(self.cors_origins)

    def get_guards_list(self) -> List[str]:
        return _split(self.guards)

    def get_core_permissions(self) -> frozenset:
        return frozenset(_split(self.core_permissions))

    def get_core_roles(self) -> frozenset:
        return frozenset(_split(self.core_roles))

    def get_per_page_options(self) -> List[int]:
        return [int(v) for v in _split(self.per_page_options)]

    def get_social_providers(self) -> List[str]:
        return _split(self.social_providers)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


settings = Settings()
