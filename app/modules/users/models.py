# Supabase tables: users, user_roles, auth.users
# This file documents the expected database schema
# Actual operations are handled via Supabase SDK in service.py
# Authentication is handled by Supabase Auth (auth.users table)

"""
Expected Supabase table structure:

users:
- id: uuid (primary key, references auth.users.id)
- name: text (not null)
- email: text (not null) - unique among rows where deleted_at is null
- avatar_url: text (nullable) - stored avatar rendition, placeholder service used when empty
- provider: text (nullable) - social login provider, e.g. "github"
- provider_id: text (nullable)
- created_at: timestamp (default: now())
- updated_at: timestamp (nullable)
- deleted_at: timestamp (nullable) - set by soft delete, cleared by restore

user_roles:
- user_id: uuid (foreign key to users.id, not null, on delete cascade)
- role_id: bigint (foreign key to roles.id, not null, on delete cascade)
- primary key (user_id, role_id)
- only roles of the default guard ("web") are assigned to users

Note: Authentication data (password hash, tokens) is stored in auth.users table
managed by Supabase Auth. This table only stores profile and lifecycle information.
"""

USERS_TABLE = "users"
USER_ROLES_TABLE = "user_roles"
