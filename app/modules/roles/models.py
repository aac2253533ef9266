# Supabase tables: permissions, roles, role_permissions
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py

"""
Expected Supabase table structure:

permissions:
- id: bigint (primary key, identity)
- name: text (not null) - e.g., "manage users", "view tokens"
- guard: text (not null, default 'web') - e.g., "web", "api"
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (name, guard)

roles:
- id: bigint (primary key, identity)
- name: text (not null) - e.g., "super-admin", "admin", "editor"
- guard: text (not null, default 'web')
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- unique constraint on (name, guard)

role_permissions:
- role_id: bigint (foreign key to roles.id, not null, on delete cascade)
- permission_id: bigint (foreign key to permissions.id, not null, on delete cascade)
- primary key (role_id, permission_id)
- a role only ever holds permissions of its own guard (enforced by the services)
"""

PERMISSIONS_TABLE = "permissions"
ROLES_TABLE = "roles"
ROLE_PERMISSIONS_TABLE = "role_permissions"
