"""
Seed Permissions and Roles Script
This script populates the permissions and roles tables using the config.
Permissions are created once per configured guard, default roles in the
default guard. Existing rows and assignments are kept, so it can be re-run.

    python app/scripts/seed_permissions_roles.py
    python app/scripts/seed_permissions_roles.py --check admin@example.com
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from app.config.permissions_config import PERMISSION_MATRIX
from app.core.dependencies import get_user_permissions, get_user_roles
from app.database.supabase_client import get_service_supabase
from app.modules.roles.models import PERMISSIONS_TABLE, ROLES_TABLE, ROLE_PERMISSIONS_TABLE
from app.modules.users.models import USERS_TABLE
from supabase import Client
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def seed_permissions(supabase: Client, matrix: dict = PERMISSION_MATRIX) -> int:
    """Seed permissions from config, one row per guard"""
    logger.info("Seeding permissions...")

    created_count = 0
    for perm in matrix["permissions"]:
        for guard in perm["guards"]:
            try:
                existing = supabase.table(PERMISSIONS_TABLE)\
                    .select("id")\
                    .eq("name", perm["name"])\
                    .eq("guard", guard)\
                    .execute()
                if existing.data:
                    continue
                supabase.table(PERMISSIONS_TABLE).insert({
                    "name": perm["name"],
                    "guard": guard
                }).execute()
                created_count += 1
                logger.debug(f"Created permission: {perm['name']} ({guard})")
            except Exception as e:
                logger.error(f"Error processing permission {perm['name']} ({guard}): {e}")

    logger.info(f"Permissions seeded: {created_count} created")
    return created_count


def seed_roles(supabase: Client, matrix: dict = PERMISSION_MATRIX) -> int:
    """Seed roles from config and give them their permissions"""
    logger.info("Seeding roles...")

    created_count = 0
    for role in matrix["roles"]:
        try:
            existing = supabase.table(ROLES_TABLE)\
                .select("id")\
                .eq("name", role["name"])\
                .eq("guard", role["guard"])\
                .execute()

            if existing.data:
                role_id = existing.data[0]["id"]
            else:
                result = supabase.table(ROLES_TABLE).insert({
                    "name": role["name"],
                    "guard": role["guard"]
                }).execute()
                role_id = result.data[0]["id"]
                created_count += 1
                logger.debug(f"Created role: {role['name']}")

            give_permissions_to_role(supabase, role_id, role)
        except Exception as e:
            logger.error(f"Error processing role {role['name']}: {e}")

    logger.info(f"Roles seeded: {created_count} created")
    return created_count


def give_permissions_to_role(supabase: Client, role_id, role: dict) -> int:
    """Add the configured permissions (same guard) the role does not hold yet"""
    permission_result = supabase.table(PERMISSIONS_TABLE)\
        .select("id")\
        .eq("guard", role["guard"])\
        .in_("name", role["permissions"])\
        .execute()

    if not permission_result.data:
        logger.warning(f"No permissions found for role {role['name']}")
        return 0

    existing_result = supabase.table(ROLE_PERMISSIONS_TABLE)\
        .select("permission_id")\
        .eq("role_id", role_id)\
        .execute()
    existing_permission_ids = {p["permission_id"] for p in existing_result.data or []}

    new_assignments = [
        {"role_id": role_id, "permission_id": p["id"]}
        for p in permission_result.data
        if p["id"] not in existing_permission_ids
    ]
    if new_assignments:
        supabase.table(ROLE_PERMISSIONS_TABLE).insert(new_assignments).execute()
        logger.debug(f"Assigned {len(new_assignments)} permissions to role {role['name']}")
    return len(new_assignments)


def check_user(supabase: Client, email: str) -> dict:
    """Report the roles and effective permissions of the user with this email"""
    result = supabase.table(USERS_TABLE)\
        .select("id, name, email, deleted_at")\
        .eq("email", email)\
        .execute()
    if not result.data:
        raise LookupError(f"No user with email {email}")
    user = result.data[0]
    return {
        "user": user,
        "roles": [r["name"] for r in get_user_roles(user["id"], supabase)],
        "permissions": get_user_permissions(user["id"], supabase),
    }


def main(argv=None):
    """Main function to seed permissions and roles"""
    parser = argparse.ArgumentParser(description="Seed permissions and roles")
    parser.add_argument("--check", metavar="EMAIL", help="print a user's roles and permissions instead of seeding")
    args = parser.parse_args(argv)

    try:
        supabase = get_service_supabase()

        if args.check:
            report = check_user(supabase, args.check)
            logger.info(f"User: {report['user']['name']} <{report['user']['email']}>")
            logger.info(f"Roles: {', '.join(report['roles']) or '-'}")
            logger.info(f"Permissions: {', '.join(report['permissions']) or '-'}")
            return

        logger.info("Starting permissions and roles seeding...")

        # Seed permissions first
        perm_count = seed_permissions(supabase)

        # Then seed roles (which depend on permissions)
        role_count = seed_roles(supabase)

        logger.info("Seeding completed successfully!")
        logger.info(f"Total: {perm_count} permissions, {role_count} roles created")

    except Exception as e:
        logger.error(f"Error during seeding: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
