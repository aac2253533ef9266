"""
In-memory stand-in for the Supabase client used by the services.

Covers the PostgREST query-builder calls made in app/ (select/insert/update/
delete, eq/neq/in_/ilike/is_/not_/or_, order/range/limit, count="exact")
plus the auth endpoints the auth and user services call.
"""

import itertools
import re
import uuid
from datetime import datetime, timedelta
from types import SimpleNamespace

AUTO_ID_TABLES = {"roles", "permissions"}
UNIQUE_KEYS = {
    "roles": ("name", "guard"),
    "permissions": ("name", "guard"),
    "role_permissions": ("role_id", "permission_id"),
    "user_roles": ("user_id", "role_id"),
}
# columns Postgres types strictly; a malformed filter value is rejected like 22P02
TYPED_COLUMNS = {
    "roles": {"id": "bigint"},
    "permissions": {"id": "bigint"},
    "role_permissions": {"role_id": "bigint", "permission_id": "bigint"},
    "users": {"id": "uuid"},
    "user_roles": {"user_id": "uuid", "role_id": "bigint"},
}


class FakeAPIError(Exception):
    pass


def _norm(value):
    return None if value is None else str(value)


def _valid(kind, value):
    text = str(value).strip()
    if kind == "bigint":
        return text.isdigit()
    try:
        uuid.UUID(text)
    except ValueError:
        return False
    return True


def _like(pattern):
    regex = re.escape(pattern).replace("%", ".*").replace("_", ".")
    return re.compile(f"^{regex}$", re.IGNORECASE | re.DOTALL)


class FakeQuery:
    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.orders = []
        self.bounds = None
        self.max_rows = None
        self.with_count = False
        self._negate = False
        self.invalid = None

    def _check(self, column, values):
        kind = TYPED_COLUMNS.get(self.table, {}).get(column)
        if kind is None:
            return
        for value in values:
            if value is not None and not _valid(kind, value):
                self.invalid = f'invalid input syntax for type {kind}: "{value}"'

    # operations
    def select(self, columns="*", count=None):
        self.op = "select"
        self.with_count = count == "exact"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    # filters
    def _add(self, predicate):
        negate, self._negate = self._negate, False
        self.filters.append((lambda row: not predicate(row)) if negate else predicate)
        return self

    @property
    def not_(self):
        self._negate = True
        return self

    def eq(self, column, value):
        self._check(column, [value])
        return self._add(lambda row: _norm(row.get(column)) == _norm(value))

    def neq(self, column, value):
        self._check(column, [value])
        return self._add(lambda row: _norm(row.get(column)) != _norm(value))

    def in_(self, column, values):
        self._check(column, values)
        wanted = {_norm(v) for v in values}
        return self._add(lambda row: _norm(row.get(column)) in wanted)

    def ilike(self, column, pattern):
        regex = _like(pattern)
        return self._add(lambda row: row.get(column) is not None and bool(regex.match(str(row[column]))))

    def is_(self, column, value):
        assert value == "null"
        return self._add(lambda row: row.get(column) is None)

    def or_(self, expression):
        clauses = []
        for part in expression.split(","):
            column, op, value = part.split(".", 2)
            assert op in ("ilike", "eq")
            if op == "ilike":
                regex = _like(value)
                clauses.append(lambda row, c=column, r=regex: row.get(c) is not None and bool(r.match(str(row[c]))))
            else:
                clauses.append(lambda row, c=column, v=value: _norm(row.get(c)) == v)
        return self._add(lambda row: any(clause(row) for clause in clauses))

    # modifiers
    def order(self, column, desc=False):
        self.orders.append((column, desc))
        return self

    def range(self, start, end):
        self.bounds = (start, end)
        return self

    def limit(self, count):
        self.max_rows = count
        return self

    def execute(self):
        self.db.calls.append((self.table, self.op))
        if self.db.failures and self.db.failures[0] == (self.table, self.op):
            self.db.failures.pop(0)
            raise FakeAPIError(f"injected failure on {self.op} {self.table}")
        if self.invalid:
            raise FakeAPIError(self.invalid)
        return getattr(self, f"_{self.op}")()

    def _matching(self):
        return [row for row in self.db.tables[self.table] if all(f(row) for f in self.filters)]

    def _select(self):
        rows = [dict(row) for row in self._matching()]
        for column, desc in reversed(self.orders):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)), reverse=desc)
        total = len(rows)
        if self.bounds is not None:
            rows = rows[self.bounds[0]:self.bounds[1] + 1]
        if self.max_rows is not None:
            rows = rows[:self.max_rows]
        return SimpleNamespace(data=rows, count=total if self.with_count else None)

    def _insert(self):
        payload = self.payload if isinstance(self.payload, list) else [self.payload]
        created = []
        for item in payload:
            row = dict(item)
            if self.table in AUTO_ID_TABLES and "id" not in row:
                row["id"] = next(self.db.ids[self.table])
            if self.table in AUTO_ID_TABLES or self.table == "users":
                row.setdefault("created_at", self.db.tick())
                row.setdefault("updated_at", row["created_at"])
            if self.table == "users":
                row.setdefault("deleted_at", None)
                row.setdefault("avatar_url", None)
                row.setdefault("provider", None)
                row.setdefault("provider_id", None)
            self.db.check_unique(self.table, row)
            self.db.tables[self.table].append(row)
            created.append(dict(row))
        return SimpleNamespace(data=created, count=None)

    def _update(self):
        rows = self._matching()
        for row in rows:
            candidate = {**row, **self.payload}
            self.db.check_unique(self.table, candidate, ignore=row)
        for row in rows:
            row.update(self.payload)
        return SimpleNamespace(data=[dict(row) for row in rows], count=None)

    def _delete(self):
        rows = self._matching()
        doomed = {id(row) for row in rows}
        self.db.tables[self.table] = [row for row in self.db.tables[self.table] if id(row) not in doomed]
        return SimpleNamespace(data=[dict(row) for row in rows], count=None)


class FakeAdminAuth:
    def __init__(self, db):
        self.db = db
        self.created = []
        self.updated = []
        self.deleted = []

    def create_user(self, attributes):
        user_id = str(uuid.uuid4())
        self.created.append({"id": user_id, **attributes})
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=attributes["email"]))

    def update_user_by_id(self, user_id, attributes):
        self.updated.append((user_id, attributes))
        return SimpleNamespace(user=SimpleNamespace(id=user_id))

    def delete_user(self, user_id):
        self.deleted.append(user_id)


class FakeAuth:
    def __init__(self, db):
        self.db = db
        self.tokens = {}
        self.admin = FakeAdminAuth(db)

    def get_user(self, jwt=None):
        user_id = self.tokens.get(jwt)
        if user_id is None:
            raise FakeAPIError("invalid JWT")
        profile = self.db.find("users", id=user_id)
        email = profile["email"] if profile else f"{user_id}@example.com"
        return SimpleNamespace(user=SimpleNamespace(
            id=user_id, email=email, user_metadata={}, app_metadata={},
            created_at=None, updated_at=None
        ))

    def sign_up(self, credentials):
        user_id = str(uuid.uuid4())
        return SimpleNamespace(user=SimpleNamespace(id=user_id, email=credentials["email"]))

    def sign_in_with_password(self, credentials):
        for row in self.db.tables["users"]:
            if row["email"] == credentials["email"]:
                token = f"token-{row['id']}"
                self.tokens[token] = row["id"]
                return SimpleNamespace(
                    user=SimpleNamespace(id=row["id"], email=row["email"]),
                    session=SimpleNamespace(access_token=token)
                )
        raise FakeAPIError("Invalid login credentials")

    def sign_out(self):
        return None


class FakeSupabase:
    def __init__(self):
        self.tables = {name: [] for name in ("roles", "permissions", "role_permissions", "users", "user_roles")}
        self.ids = {name: itertools.count(1) for name in AUTO_ID_TABLES}
        self.calls = []
        self.failures = []
        self.auth = FakeAuth(self)
        self._clock = datetime(2025, 1, 1)

    def table(self, name):
        return FakeQuery(self, name)

    def tick(self):
        self._clock += timedelta(seconds=1)
        return self._clock.isoformat()

    def check_unique(self, table, row, ignore=None):
        keys = UNIQUE_KEYS.get(table)
        if not keys:
            return
        for existing in self.tables[table]:
            if existing is ignore:
                continue
            if all(_norm(existing.get(k)) == _norm(row.get(k)) for k in keys):
                raise FakeAPIError(f"duplicate key value violates unique constraint on {table}")

    def fail_on(self, table, op):
        """Make the next matching execute() raise"""
        self.failures.append((table, op))

    # seeding helpers
    def add_permission(self, name, guard="web"):
        return self.table("permissions").insert({"name": name, "guard": guard}).execute().data[0]

    def add_role(self, name, guard="web", permissions=()):
        role = self.table("roles").insert({"name": name, "guard": guard}).execute().data[0]
        for permission_name in permissions:
            permission = self.find("permissions", name=permission_name, guard=guard)
            if permission is None:
                permission = self.add_permission(permission_name, guard)
            self.table("role_permissions").insert(
                {"role_id": role["id"], "permission_id": permission["id"]}
            ).execute()
        return role

    def add_user(self, name, email=None, roles=(), deleted=False, user_id=None):
        user = self.table("users").insert({
            "id": user_id or str(uuid.uuid4()),
            "name": name,
            "email": email or f"{name.lower().replace(' ', '.')}@example.com",
            "deleted_at": self.tick() if deleted else None,
        }).execute().data[0]
        for role_name in roles:
            role = self.find("roles", name=role_name, guard="web")
            self.table("user_roles").insert({"user_id": user["id"], "role_id": role["id"]}).execute()
        return user

    def token_for(self, user):
        token = f"token-{user['id']}"
        self.auth.tokens[token] = user["id"]
        return token

    def headers_for(self, user):
        return {"Authorization": f"Bearer {self.token_for(user)}"}

    # inspection helpers
    def find(self, table, **criteria):
        for row in self.tables[table]:
            if all(_norm(row.get(k)) == _norm(v) for k, v in criteria.items()):
                return row
        return None

    def rows(self, table, **criteria):
        return [row for row in self.tables[table] if all(_norm(row.get(k)) == _norm(v) for k, v in criteria.items())]

    def permission_names_of_role(self, role_id):
        ids = {link["permission_id"] for link in self.rows("role_permissions", role_id=role_id)}
        return sorted(p["name"] for p in self.tables["permissions"] if p["id"] in ids)
