"""
Permissions and Roles Configuration
This config defines the permission matrix seeded into every guard and the
default roles created in the default guard.
Used by the seed script and by the /auth/me endpoint for super users.
"""

from app.config.settings import settings

# Permissions grouped by the area of the admin panel they unlock
MODULES = {
    "tokens": {
        "permissions": ["view tokens", "create tokens", "edit tokens", "delete tokens"],
        "description": "Token creation and management"
    },
    "users": {
        "permissions": ["manage users"],
        "description": "User administration"
    },
    "roles": {
        "permissions": ["manage roles"],
        "description": "Role administration"
    },
    "permissions": {
        "permissions": ["manage permissions"],
        "description": "Permission administration"
    },
    "settings": {
        "permissions": ["manage settings"],
        "description": "Account settings"
    }
}

# Default roles; "*" grants every permission in the matrix
DEFAULT_ROLES = {
    "super-admin": ["*"],
    "admin": ["view tokens", "create tokens", "edit tokens", "delete tokens", "manage users"],
    "pro": ["view tokens", "create tokens", "edit tokens", "manage settings"],
    "free": ["view tokens", "manage settings"],
}


def get_permission_matrix():
    """
    Returns a dictionary with all permissions and the default roles
    Format: {
        "permissions": [{"name": "view tokens", "module": "tokens", "guards": ["web", "api"]}, ...],
        "roles": [{"name": "admin", "guard": "web", "permissions": ["view tokens", ...]}, ...]
    }
    """
    guards = settings.get_guards_list()
    permissions = []
    for module_name, module_config in MODULES.items():
        for permission_name in module_config["permissions"]:
            permissions.append({
                "name": permission_name,
                "module": module_name,
                "guards": guards
            })

    all_names = [p["name"] for p in permissions]
    roles = []
    for role_name, granted in DEFAULT_ROLES.items():
        roles.append({
            "name": role_name,
            "guard": settings.default_guard,
            "permissions": all_names if granted == ["*"] else list(granted)
        })

    return {
        "permissions": permissions,
        "roles": roles
    }


# Export the matrix for use in seed scripts
PERMISSION_MATRIX = get_permission_matrix()
