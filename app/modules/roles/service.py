import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from fastapi import HTTPException
from supabase import Client

from app.config.settings import settings
from app.core import bulk
from app.core.errors import field_error, forbidden, not_found, server_error
from app.core.pagination import normalize_pagination, paginate_list
from app.modules.roles.merge import merge_group, merge_rows, names_by_guard
from app.modules.roles.models import PERMISSIONS_TABLE, ROLES_TABLE, ROLE_PERMISSIONS_TABLE
from app.modules.roles.schemas import PermissionCreate, PermissionUpdate, RoleCreate, RoleUpdate
from app.modules.users.models import USER_ROLES_TABLE

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.utcnow().isoformat()


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise field_error("name", "The name field is required.")
    return cleaned


class _GuardedStore:
    """Queries shared by roles and permissions: both live once per guard."""

    table = ""

    def __init__(self, supabase: Client, guards: Optional[List[str]] = None):
        self.supabase = supabase
        self.guards = guards if guards is not None else settings.get_guards_list()

    def _get_row(self, row_id: Any, entity: str) -> dict:
        try:
            row_id = bulk.as_int_id(row_id)
        except ValueError:
            raise not_found(entity)
        result = self.supabase.table(self.table)\
            .select("*")\
            .eq("id", row_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise not_found(entity)
        return result.data[0]

    def _rows_named(self, name: str) -> List[dict]:
        result = self.supabase.table(self.table)\
            .select("*")\
            .eq("name", name)\
            .order("id")\
            .execute()
        return result.data or []

    def _all_rows(self, search: Optional[str] = None) -> List[dict]:
        query = self.supabase.table(self.table).select("*")
        if search:
            query = query.ilike("name", f"%{search}%")
        return query.order("id").execute().data or []

    def _validate_guards(self, guards: Optional[List[str]]) -> List[str]:
        guards = list(guards) if guards else [settings.default_guard]
        if any(guard not in self.guards for guard in guards):
            raise field_error("guards", "The selected guard is invalid.")
        return list(dict.fromkeys(guards))

    def _ensure_name_available(self, name: str, guards: Iterable[str]) -> None:
        guards = list(guards)
        if not guards:
            return
        result = self.supabase.table(self.table)\
            .select("id, guard")\
            .eq("name", name)\
            .in_("guard", guards)\
            .execute()
        if result.data:
            raise field_error("name", "The name has already been taken.")

    def _ids_for_names(self, table: str, guard: str, names: Iterable[str]) -> List[Any]:
        """Resolve names within one guard; unknown names are skipped."""
        names = [n for n in dict.fromkeys(names or []) if n]
        if not names:
            return []
        result = self.supabase.table(table)\
            .select("id, name")\
            .eq("guard", guard)\
            .in_("name", names)\
            .execute()
        found = {row["name"]: row["id"] for row in result.data or []}
        skipped = [n for n in names if n not in found]
        if skipped:
            logger.debug("Skipping unknown %s in guard %s: %s", table, guard, skipped)
        return [found[n] for n in names if n in found]

    def _pivot(self, owner_column: str, owner_ids: List[Any]) -> List[dict]:
        if not owner_ids:
            return []
        result = self.supabase.table(ROLE_PERMISSIONS_TABLE)\
            .select("role_id, permission_id")\
            .in_(owner_column, owner_ids)\
            .execute()
        return result.data or []

    def _sync_pivot(self, owner_column: str, owner_id: Any, other_column: str, other_ids: List[Any]) -> None:
        """Replace the pivot rows of one owner with exactly other_ids."""
        self.supabase.table(ROLE_PERMISSIONS_TABLE)\
            .delete()\
            .eq(owner_column, owner_id)\
            .execute()
        if other_ids:
            self.supabase.table(ROLE_PERMISSIONS_TABLE).insert([
                {owner_column: owner_id, other_column: other_id}
                for other_id in other_ids
            ]).execute()

    def _rename_group(self, old_name: str, new_name: str) -> None:
        self.supabase.table(self.table)\
            .update({"name": new_name, "updated_at": _now()})\
            .eq("name", old_name)\
            .execute()

    def _restore_group(self, rows: List[dict], old_name: str, renamed: bool,
                       owner_column: str, other_column: str, snapshot: Optional[Dict[Any, List[Any]]]) -> None:
        """Put names and pivot rows back after a failed rename/resync."""
        row_ids = [row["id"] for row in rows]
        try:
            if renamed:
                self.supabase.table(self.table)\
                    .update({"name": old_name})\
                    .in_("id", row_ids)\
                    .execute()
            if snapshot is not None:
                for row_id in row_ids:
                    self._sync_pivot(owner_column, row_id, other_column, snapshot.get(row_id, []))
        except Exception:
            logger.exception("Failed to restore %s group %r after an aborted update", self.table, old_name)

    def _snapshot(self, owner_column: str, other_column: str, owner_ids: List[Any]) -> Dict[Any, List[Any]]:
        snapshot: Dict[Any, List[Any]] = {owner_id: [] for owner_id in owner_ids}
        for link in self._pivot(owner_column, owner_ids):
            snapshot.setdefault(link[owner_column], []).append(link[other_column])
        return snapshot

    def _delete_rows(self, ids: Any, protected_names, label: str, plural: str,
                     pivot_column: str, single_protected, many_protected_prefix: str, extra_pivots=()) -> dict:
        ids = bulk.parse_ids(ids, bulk.as_int_id)
        if not ids:
            return bulk.result(False, f"No {plural} selected for deletion.")

        rows = self.supabase.table(self.table)\
            .select("*")\
            .in_("id", ids)\
            .execute().data or []
        deletable, protected = bulk.partition_protected(rows, lambda row: row["name"] in protected_names)

        deletable_ids = [row["id"] for row in deletable]
        if deletable_ids:
            # Protected rows in the same batch do not hold back the others
            self.supabase.table(ROLE_PERMISSIONS_TABLE).delete().in_(pivot_column, deletable_ids).execute()
            for table, column in extra_pivots:
                self.supabase.table(table).delete().in_(column, deletable_ids).execute()
            self.supabase.table(self.table).delete().in_("id", deletable_ids).execute()
            logger.info("Deleted %s %s", plural, deletable_ids)

        message = bulk.protected_message([row["name"] for row in protected], single_protected, many_protected_prefix)
        if message:
            return bulk.result(False, message)
        return bulk.result(True, bulk.count_message(
            len(deletable_ids), f"{label} deleted successfully.", plural, "deleted"
        ))


class PermissionService(_GuardedStore):
    table = PERMISSIONS_TABLE

    def __init__(self, supabase: Client, core_permissions: Optional[Iterable[str]] = None,
                 guards: Optional[List[str]] = None):
        super().__init__(supabase, guards)
        self.core_permissions = frozenset(
            core_permissions if core_permissions is not None else settings.get_core_permissions()
        )

    def _attach_roles(self, permissions: List[dict]) -> List[dict]:
        """Load each permission's roles in two queries."""
        links = self._pivot("permission_id", [p["id"] for p in permissions])
        role_ids = list({link["role_id"] for link in links})
        roles = {}
        if role_ids:
            result = self.supabase.table(ROLES_TABLE)\
                .select("id, name, guard")\
                .in_("id", role_ids)\
                .execute()
            roles = {r["id"]: {"id": r["id"], "name": r["name"], "guard": r["guard"]} for r in result.data or []}
        by_permission: Dict[Any, List[dict]] = {}
        for link in links:
            if link["role_id"] in roles:
                by_permission.setdefault(link["permission_id"], []).append(roles[link["role_id"]])
        return [{**p, "roles": by_permission.get(p["id"], [])} for p in permissions]

    def list_permissions(self, filter: Optional[str] = None, per_page: Any = None,
                         page: Any = None, search: Optional[str] = None) -> dict:
        """List permissions merged by name across guards (filter ignored: no soft deletes)"""
        try:
            valid_per_page, valid_page = normalize_pagination(per_page, page)
            rows = self._attach_roles(self._all_rows(search))
            return paginate_list(merge_rows(rows, "roles"), valid_per_page, valid_page)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error listing permissions: {e}")
            raise server_error(e)

    def group_by_guard(self) -> Dict[str, List[dict]]:
        """All permissions grouped by guard, for role forms"""
        try:
            grouped: Dict[str, List[dict]] = {}
            for row in self._all_rows():
                grouped.setdefault(row["guard"], []).append(row)
            return grouped
        except Exception as e:
            logger.error(f"Error grouping permissions: {e}")
            raise server_error(e)

    def get_permission_details(self, permission_id: Any) -> dict:
        """Get a permission merged with its same-named rows in other guards"""
        try:
            permission = self._get_row(permission_id, "Permission")
            rows = self._attach_roles(self._rows_named(permission["name"]))
            merged = merge_group(rows, "roles")
            return {
                **merged,
                "id": permission["id"],
                "created_at": permission.get("created_at"),
                "updated_at": permission.get("updated_at"),
            }
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting permission {permission_id}: {e}")
            raise server_error(e)

    def create_permission(self, permission_data: PermissionCreate) -> List[dict]:
        """Create the permission once per requested guard and attach roles per guard"""
        try:
            name = _clean_name(permission_data.name)
            guards = self._validate_guards(permission_data.guards)
            role_names = [r for r in (permission_data.roles or []) if r]
            if role_names:
                existing = self.supabase.table(ROLES_TABLE)\
                    .select("name")\
                    .in_("name", role_names)\
                    .execute()
                known = {row["name"] for row in existing.data or []}
                if any(r not in known for r in role_names):
                    raise field_error("roles", "The selected roles is invalid.")
            self._ensure_name_available(name, guards)

            created = []
            for guard in guards:
                if self._ids_for_names(self.table, guard, [name]):
                    logger.debug("Permission %r already exists for guard %s", name, guard)
                    continue
                result = self.supabase.table(self.table).insert({
                    "name": name,
                    "guard": guard,
                }).execute()
                if not result.data:
                    raise HTTPException(status_code=500, detail="Failed to create permission")
                created.append(result.data[0])

            for permission in created:
                role_ids = self._ids_for_names(ROLES_TABLE, permission["guard"], role_names)
                if role_ids:
                    self.supabase.table(ROLE_PERMISSIONS_TABLE).insert([
                        {"role_id": role_id, "permission_id": permission["id"]} for role_id in role_ids
                    ]).execute()

            logger.info("Created permission %r for guards %s", name, [p["guard"] for p in created])
            return self._attach_roles(created)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating permission: {e}")
            raise server_error(e)

    def update_permission(self, permission_id: Any, permission_data: PermissionUpdate) -> dict:
        """
        Rename the permission in every guard and sync its roles per guard.
        A missing roles key clears all roles.
        """
        try:
            permission = self._get_row(permission_id, "Permission")
            old_name = permission["name"]
            new_name = _clean_name(permission_data.name)
            rows = self._rows_named(old_name)
            renaming = new_name != old_name
            if renaming:
                if old_name in self.core_permissions:
                    raise forbidden(f'Core permission "{old_name}" cannot be renamed.')
                self._ensure_name_available(new_name, [row["guard"] for row in rows])

            role_names = permission_data.roles or []
            desired = {
                row["id"]: self._ids_for_names(ROLES_TABLE, row["guard"], role_names)
                for row in rows
            }
            snapshot = self._snapshot("permission_id", "role_id", list(desired))

            renamed = False
            try:
                if renaming:
                    self._rename_group(old_name, new_name)
                    renamed = True
                for row_id, role_ids in desired.items():
                    self._sync_pivot("permission_id", row_id, "role_id", role_ids)
            except Exception:
                self._restore_group(rows, old_name, renamed, "permission_id", "role_id", snapshot)
                raise

            logger.info("Updated permission %r (%s rows)", new_name, len(rows))
            return self._attach_roles([self._get_row(permission["id"], "Permission")])[0]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating permission {permission_id}: {e}")
            raise server_error(e)

    def delete_permissions(self, ids: Any) -> dict:
        """Delete permissions by id; core permissions are kept and reported"""
        try:
            return self._delete_rows(
                ids,
                self.core_permissions,
                label="Permission",
                plural="permissions",
                pivot_column="permission_id",
                single_protected=lambda name: f'Core permission "{name}" cannot be deleted.',
                many_protected_prefix="Core permissions cannot be deleted",
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting permissions: {e}")
            raise server_error(e)


class RoleService(_GuardedStore):
    table = ROLES_TABLE

    def __init__(self, supabase: Client, core_roles: Optional[Iterable[str]] = None,
                 guards: Optional[List[str]] = None):
        super().__init__(supabase, guards)
        self.core_roles = frozenset(core_roles if core_roles is not None else settings.get_core_roles())

    def _attach_permissions(self, roles: List[dict]) -> List[dict]:
        """Load each role's permissions in two queries."""
        links = self._pivot("role_id", [r["id"] for r in roles])
        permission_ids = list({link["permission_id"] for link in links})
        permissions = {}
        if permission_ids:
            result = self.supabase.table(PERMISSIONS_TABLE)\
                .select("*")\
                .in_("id", permission_ids)\
                .order("id")\
                .execute()
            permissions = {p["id"]: p for p in result.data or []}
        by_role: Dict[Any, List[dict]] = {}
        for link in links:
            if link["permission_id"] in permissions:
                by_role.setdefault(link["role_id"], []).append(permissions[link["permission_id"]])
        return [
            {**r, "permissions": sorted(by_role.get(r["id"], []), key=lambda p: p["id"])}
            for r in roles
        ]

    def get_role_by_id(self, role_id: Any) -> dict:
        """Get a single guard row with its permissions"""
        try:
            return self._attach_permissions([self._get_row(role_id, "Role")])[0]
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting role {role_id}: {e}")
            raise server_error(e)

    def list_roles(self, filter: Optional[str] = None, per_page: Any = None,
                   page: Any = None, search: Optional[str] = None) -> dict:
        """List roles merged by name across guards, paginated after merging"""
        try:
            valid_per_page, valid_page = normalize_pagination(per_page, page)
            rows = self._attach_permissions(self._all_rows(search))
            return paginate_list(merge_rows(rows, "permissions"), valid_per_page, valid_page)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error listing roles: {e}")
            raise server_error(e)

    def get_role_details(self, role_id: Any) -> dict:
        """Get a role merged with its same-named rows in other guards"""
        try:
            role = self._get_row(role_id, "Role")
            rows = self._attach_permissions(self._rows_named(role["name"]))
            merged = merge_group(rows, "permissions")
            return {
                **merged,
                "id": role["id"],
                "created_at": role.get("created_at"),
                "updated_at": role.get("updated_at"),
                "permissions_by_guard": names_by_guard(merged["permissions"]),
            }
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting role details {role_id}: {e}")
            raise server_error(e)

    def create_role(self, role_data: RoleCreate) -> List[dict]:
        """Create one role row per guard; permissions are resolved within each row's guard"""
        try:
            name = _clean_name(role_data.name)
            guards = self._validate_guards(role_data.guards)
            self._ensure_name_available(name, guards)

            requested = role_data.permissions or {}
            created = []
            for guard in guards:
                result = self.supabase.table(self.table).insert({
                    "name": name,
                    "guard": guard,
                }).execute()
                if not result.data:
                    raise HTTPException(status_code=500, detail="Failed to create role")
                role = result.data[0]
                permission_ids = self._ids_for_names(PERMISSIONS_TABLE, guard, requested.get(guard) or [])
                if permission_ids:
                    self._sync_pivot("role_id", role["id"], "permission_id", permission_ids)
                created.append(role)

            logger.info("Created role %r for guards %s", name, guards)
            return self._attach_permissions(created)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating role: {e}")
            raise server_error(e)

    def update_role(self, role_id: Any, role_data: RoleUpdate) -> dict:
        """
        Rename every guard row sharing the role's name and, when a permissions
        map is given, replace each row's permissions with the names listed
        under its own guard. Omitting the map leaves permissions untouched.
        """
        try:
            role = self._get_row(role_id, "Role")
            old_name = role["name"]
            rows = self._rows_named(old_name)

            new_name = old_name
            if role_data.name is not None:
                new_name = _clean_name(role_data.name)
            renaming = new_name != old_name
            if renaming:
                if old_name in self.core_roles:
                    raise forbidden(f"The {old_name} role cannot be renamed.")
                self._ensure_name_available(new_name, [row["guard"] for row in rows])

            desired = None
            snapshot = None
            if role_data.permissions is not None:
                desired = {
                    row["id"]: self._ids_for_names(
                        PERMISSIONS_TABLE, row["guard"], role_data.permissions.get(row["guard"]) or []
                    )
                    for row in rows
                }
                snapshot = self._snapshot("role_id", "permission_id", list(desired))

            renamed = False
            try:
                if renaming:
                    self._rename_group(old_name, new_name)
                    renamed = True
                for row_id, permission_ids in (desired or {}).items():
                    self._sync_pivot("role_id", row_id, "permission_id", permission_ids)
            except Exception:
                self._restore_group(rows, old_name, renamed, "role_id", "permission_id", snapshot)
                raise

            logger.info("Updated role %r across guards %s", new_name, [row["guard"] for row in rows])
            return self.get_role_by_id(role["id"])
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating role {role_id}: {e}")
            raise server_error(e)

    def delete_roles(self, ids: Any) -> dict:
        """Delete roles by id; core roles are kept and reported"""
        try:
            return self._delete_rows(
                ids,
                self.core_roles,
                label="Role",
                plural="roles",
                pivot_column="role_id",
                single_protected=lambda name: f"The {name} role cannot be deleted.",
                many_protected_prefix="Protected roles cannot be deleted",
                extra_pivots=[(USER_ROLES_TABLE, "role_id")],
            )
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting roles: {e}")
            raise server_error(e)
