import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

from fastapi import HTTPException
from supabase import Client

from app.config.settings import settings
from app.core import bulk
from app.core.dependencies import get_user_permissions, is_super_user
from app.core.errors import field_error, forbidden, not_found, server_error
from app.core.pagination import build_page, normalize_pagination, page_range
from app.modules.roles.models import ROLES_TABLE
from app.modules.users.models import USERS_TABLE, USER_ROLES_TABLE
from app.modules.users.schemas import UserCreate, UserUpdate

logger = logging.getLogger(__name__)

TRASH_FILTERS = ("withoutTrash", "onlyTrash", "withTrash", "all")


def avatar_url(user: dict, size: int = 320) -> str:
    """Stored avatar, or the placeholder avatar service keyed on the user's name"""
    if user.get("avatar_url"):
        return user["avatar_url"]
    name = quote_plus(user.get("name") or "")
    return f"{settings.avatar_fallback_url}?name={name}&background=random&size={size}"


def _search_term(search: str) -> str:
    # PostgREST or() syntax reserves these characters
    return "".join(ch for ch in search if ch not in ",()").strip()


class UserService:
    def __init__(self, supabase: Client, admin: Optional[Client] = None):
        self.supabase = supabase
        self.admin = admin or supabase

    def _present(self, user: dict, roles: Optional[List[dict]] = None) -> dict:
        return {
            **user,
            "avatar": avatar_url(user, 320),
            "avatar_small": avatar_url(user, 80),
            "roles": roles or [],
        }

    def _roles_for(self, user_ids: List[str]) -> Dict[str, List[dict]]:
        if not user_ids:
            return {}
        links = self.supabase.table(USER_ROLES_TABLE)\
            .select("user_id, role_id")\
            .in_("user_id", user_ids)\
            .execute().data or []
        role_ids = list({link["role_id"] for link in links})
        roles = {}
        if role_ids:
            result = self.supabase.table(ROLES_TABLE)\
                .select("id, name, guard")\
                .in_("id", role_ids)\
                .execute()
            roles = {r["id"]: r for r in result.data or []}
        by_user: Dict[str, List[dict]] = {}
        for link in links:
            if link["role_id"] in roles:
                by_user.setdefault(str(link["user_id"]), []).append(roles[link["role_id"]])
        return by_user

    @staticmethod
    def _coerce_id(user_id: Any) -> str:
        try:
            return bulk.as_uuid_id(user_id)
        except ValueError:
            raise not_found("User")

    def _find(self, user_id: str) -> dict:
        user_id = self._coerce_id(user_id)
        result = self.supabase.table(USERS_TABLE)\
            .select("*")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        if not result.data:
            raise not_found("User")
        return result.data[0]

    def _ensure_email_available(self, email: str, ignore_id: Optional[str] = None) -> None:
        query = self.supabase.table(USERS_TABLE)\
            .select("id")\
            .eq("email", email)\
            .is_("deleted_at", "null")
        if ignore_id is not None:
            query = query.neq("id", ignore_id)
        if query.execute().data:
            raise field_error("email", "The email has already been taken.")

    def sync_roles(self, user_id: str, role_names: List[str]) -> None:
        """Replace the user's roles with the named default-guard roles; unknown names are skipped"""
        role_ids: List[Any] = []
        names = [n for n in role_names if n]
        if names:
            result = self.supabase.table(ROLES_TABLE)\
                .select("id, name")\
                .eq("guard", settings.default_guard)\
                .in_("name", names)\
                .execute()
            role_ids = [r["id"] for r in result.data or []]
        self.supabase.table(USER_ROLES_TABLE).delete().eq("user_id", user_id).execute()
        if role_ids:
            self.supabase.table(USER_ROLES_TABLE).insert([
                {"user_id": user_id, "role_id": role_id} for role_id in role_ids
            ]).execute()

    def list_users(self, filter: Optional[str] = None, per_page: Any = None,
                   page: Any = None, search: Optional[str] = None) -> dict:
        """List users newest first; filter selects active, trashed or both"""
        try:
            valid_per_page, valid_page = normalize_pagination(per_page, page)
            query = self.supabase.table(USERS_TABLE).select("*", count="exact")

            term = _search_term(search or "")
            if term:
                query = query.or_(f"name.ilike.%{term}%,email.ilike.%{term}%")

            filter = filter if filter in TRASH_FILTERS else "withoutTrash"
            if filter == "onlyTrash":
                query = query.not_.is_("deleted_at", "null")
            elif filter == "withoutTrash":
                query = query.is_("deleted_at", "null")
            # withTrash and all include every row

            start, end = page_range(valid_per_page, valid_page)
            result = query.order("created_at", desc=True).range(start, end).execute()
            users = result.data or []
            roles = self._roles_for([u["id"] for u in users])
            data = [self._present(u, roles.get(str(u["id"]))) for u in users]
            return build_page(data, result.count or 0, valid_per_page, valid_page)
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error listing users: {e}")
            raise server_error(e)

    def get_user_by_id(self, user_id: str) -> dict:
        """Get user with roles and effective permissions (trashed users included)"""
        try:
            user = self._find(user_id)
            detail = self._present(user, self._roles_for([user["id"]]).get(str(user["id"])))
            detail["permissions"] = get_user_permissions(user["id"], self.supabase)
            detail["is_super_admin"] = is_super_user(user["id"], self.supabase)
            return detail
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error getting user {user_id}: {e}")
            raise server_error(e)

    def _discard_credentials(self, auth_user_id: str) -> None:
        """Remove an auth account whose profile row could not be stored"""
        try:
            self.admin.auth.admin.delete_user(auth_user_id)
        except Exception:
            logger.exception("Failed to remove auth account %s after an aborted user create", auth_user_id)

    def create_user(self, user_data: UserCreate) -> dict:
        """Register the credential with Supabase Auth, then store the profile row"""
        try:
            self._ensure_email_available(user_data.email)
            auth_response = self.admin.auth.admin.create_user({
                "email": user_data.email,
                "password": user_data.password,
                "email_confirm": True,
                "user_metadata": {"name": user_data.name}
            })
            if not auth_response.user:
                raise HTTPException(status_code=500, detail="Failed to create user")

            try:
                result = self.supabase.table(USERS_TABLE).insert({
                    "id": auth_response.user.id,
                    "name": user_data.name,
                    "email": user_data.email,
                }).execute()
                if not result.data:
                    raise HTTPException(status_code=500, detail="Failed to create user")
            except Exception:
                self._discard_credentials(auth_response.user.id)
                raise
            user = result.data[0]

            if user_data.roles is not None:
                self.sync_roles(user["id"], user_data.roles)
            logger.info("Created user %s", user["id"])
            return self._present(user, self._roles_for([user["id"]]).get(str(user["id"])))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error creating user: {e}")
            raise server_error(e)

    def update_user(self, user_id: str, user_data: UserUpdate) -> dict:
        """Update profile; password only when given, roles only when the key is present"""
        try:
            user = self._find(user_id)
            self._ensure_email_available(user_data.email, ignore_id=user["id"])

            credentials: Dict[str, Any] = {}
            if user_data.email != user["email"]:
                credentials["email"] = user_data.email
            if user_data.password:
                credentials["password"] = user_data.password
            if credentials:
                self.admin.auth.admin.update_user_by_id(user["id"], credentials)

            result = self.supabase.table(USERS_TABLE)\
                .update({
                    "name": user_data.name,
                    "email": user_data.email,
                    "updated_at": datetime.utcnow().isoformat()
                })\
                .eq("id", user["id"])\
                .execute()
            if not result.data:
                raise not_found("User")

            if user_data.roles is not None:
                self.sync_roles(user["id"], user_data.roles)
            return self._present(result.data[0], self._roles_for([user["id"]]).get(str(user["id"])))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error updating user {user_id}: {e}")
            raise server_error(e)

    def delete_user(self, user_id: str) -> bool:
        """Soft delete one active user"""
        try:
            user_id = self._coerce_id(user_id)
            result = self.supabase.table(USERS_TABLE)\
                .update({"deleted_at": datetime.utcnow().isoformat()})\
                .eq("id", user_id)\
                .is_("deleted_at", "null")\
                .execute()
            if not result.data:
                raise not_found("User")
            return True
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting user {user_id}: {e}")
            raise server_error(e)

    def delete_users(self, ids: Any, current_user_id: str) -> dict:
        """Soft delete users in bulk; the acting user is never deleted"""
        try:
            ids = bulk.parse_ids(ids, bulk.as_uuid_id)
            if not ids:
                return bulk.result(False, "No users selected for deletion.")

            users = self.supabase.table(USERS_TABLE)\
                .select("id, name")\
                .in_("id", ids)\
                .is_("deleted_at", "null")\
                .execute().data or []
            deletable, protected = bulk.partition_protected(
                users, lambda user: str(user["id"]) == str(current_user_id)
            )

            deletable_ids = [u["id"] for u in deletable]
            if deletable_ids:
                self.supabase.table(USERS_TABLE)\
                    .update({"deleted_at": datetime.utcnow().isoformat()})\
                    .in_("id", deletable_ids)\
                    .execute()
                logger.info("Soft deleted users %s", deletable_ids)

            message = bulk.protected_message(
                [u["name"] for u in protected],
                lambda name: "You cannot delete yourself.",
                "Cannot delete protected users",
            )
            if message:
                return bulk.result(False, message)
            return bulk.result(True, bulk.count_message(
                len(deletable_ids), "User deleted successfully.", "users", "deleted"
            ))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error deleting users: {e}")
            raise server_error(e)

    def _purge(self, user_id: str) -> None:
        self.supabase.table(USER_ROLES_TABLE).delete().eq("user_id", user_id).execute()
        self.supabase.table(USERS_TABLE).delete().eq("id", user_id).execute()
        self.admin.auth.admin.delete_user(user_id)

    def force_delete_users(self, ids: Any, current_user_id: str) -> dict:
        """Permanently remove trashed users; active users are skipped"""
        try:
            ids = [i for i in bulk.parse_ids(ids, bulk.as_uuid_id) if i != str(current_user_id)]
            if not ids:
                return bulk.result(False, "No users selected for force deletion or you tried to delete yourself.")

            users = self.supabase.table(USERS_TABLE)\
                .select("id, deleted_at")\
                .in_("id", ids)\
                .execute().data or []
            removed = []
            for user in users:
                if user.get("deleted_at"):
                    self._purge(user["id"])
                    removed.append(user["id"])
            logger.info("Force deleted users %s", removed)
            return bulk.result(True, bulk.count_message(
                len(removed), "User force deleted successfully.", "users", "force deleted"
            ))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error force deleting users: {e}")
            raise server_error(e)

    def restore_users(self, ids: Any) -> dict:
        """Restore trashed users; active users are skipped"""
        try:
            ids = bulk.parse_ids(ids, bulk.as_uuid_id)
            if not ids:
                return bulk.result(False, "No users selected for restoration.")

            trashed = self.supabase.table(USERS_TABLE)\
                .select("id")\
                .in_("id", ids)\
                .not_.is_("deleted_at", "null")\
                .execute().data or []
            restored = [u["id"] for u in trashed]
            if restored:
                self.supabase.table(USERS_TABLE)\
                    .update({"deleted_at": None})\
                    .in_("id", restored)\
                    .execute()
                logger.info("Restored users %s", restored)
            return bulk.result(True, bulk.count_message(
                len(restored), "User restored successfully.", "users", "restored"
            ))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error restoring users: {e}")
            raise server_error(e)

    def restore_user(self, user_id: str) -> dict:
        try:
            user = self._find(user_id)
            if not user.get("deleted_at"):
                return bulk.result(False, "User is not deleted.")
            self.supabase.table(USERS_TABLE).update({"deleted_at": None}).eq("id", user["id"]).execute()
            return bulk.result(True, "User restored successfully.")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error restoring user {user_id}: {e}")
            raise server_error(e)

    def force_delete_user(self, user_id: str, current_user_id: str) -> dict:
        """Force delete one user; like the bulk path it must be trashed first"""
        try:
            user = self._find(user_id)
            if str(user["id"]) == str(current_user_id):
                return bulk.result(False, "You cannot force delete yourself.")
            if not user.get("deleted_at"):
                return bulk.result(False, "User is not deleted.")
            self._purge(user["id"])
            return bulk.result(True, "User force deleted successfully.")
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error force deleting user {user_id}: {e}")
            raise server_error(e)

    def link_social_user(self, current_user: Dict[str, Any], provider: str, provider_id: str,
                         email: str, name: Optional[str] = None) -> dict:
        """
        Link a social login to the signed-in user's profile, or create it.
        Only the caller's own row is ever touched: the claimed email must be
        the one Supabase Auth holds for the caller.
        """
        try:
            user_id = current_user["id"]
            caller_email = (current_user.get("email") or "").strip()
            if not caller_email or email.strip().lower() != caller_email.lower():
                raise forbidden("You can only link a social account to your own profile.")

            existing = self.supabase.table(USERS_TABLE)\
                .select("*")\
                .eq("id", user_id)\
                .limit(1)\
                .execute()
            if not existing.data:
                existing = self.supabase.table(USERS_TABLE)\
                    .select("*")\
                    .eq("email", caller_email)\
                    .is_("deleted_at", "null")\
                    .limit(1)\
                    .execute()
            if existing.data:
                user = existing.data[0]
                result = self.supabase.table(USERS_TABLE)\
                    .update({
                        "provider": provider,
                        "provider_id": provider_id,
                        "updated_at": datetime.utcnow().isoformat()
                    })\
                    .eq("id", user["id"])\
                    .execute()
            else:
                result = self.supabase.table(USERS_TABLE).insert({
                    "id": user_id,
                    "name": name or caller_email.split("@")[0],
                    "email": caller_email,
                    "provider": provider,
                    "provider_id": provider_id,
                }).execute()
            if not result.data:
                raise HTTPException(status_code=500, detail="Failed to link social account")
            user = result.data[0]
            logger.info("Linked %s account to user %s", provider, user["id"])
            return self._present(user, self._roles_for([user["id"]]).get(str(user["id"])))
        except HTTPException:
            raise
        except Exception as e:
            logger.error(f"Error linking {provider} account: {e}")
            raise server_error(e)
