def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}
    assert response.headers["X-Frame-Options"] == "DENY"


def test_admin_routes_require_a_token(client, seeded):
    response = client.get("/api/v1/admin/users")
    assert response.status_code == 401
    assert response.json()["detail"] == "Not authenticated"


def test_invalid_token_is_rejected(client, seeded):
    response = client.get("/api/v1/admin/users", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


def test_page_navigation_without_token_redirects_to_login(client, seeded):
    response = client.get("/api/v1/admin/users", headers={"X-Inertia": "true"}, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/login"


def test_missing_permission_is_forbidden(client, seeded):
    headers = seeded.db.headers_for(seeded.member)
    response = client.get("/api/v1/admin/users", headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"] == "Insufficient permissions. Required: manage users"


def test_page_navigation_without_permission_redirects_home(client, seeded):
    headers = {**seeded.db.headers_for(seeded.member), "X-Inertia": "true"}
    response = client.get("/api/v1/admin/roles", headers=headers, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "/dashboard"


def test_super_admin_passes_every_check(client, db):
    db.add_role("super-admin")
    root = db.add_user("Root", roles=["super-admin"])
    response = client.get("/api/v1/admin/permissions", headers=db.headers_for(root))
    assert response.status_code == 200


def test_trashed_user_loses_permissions(client, seeded):
    db = seeded.db
    ghost = db.add_user("Ghost", roles=["admin"], deleted=True)
    response = client.get("/api/v1/admin/users", headers=db.headers_for(ghost))
    assert response.status_code == 403


def test_list_users_falls_back_to_default_page_size(client, seeded):
    headers = seeded.db.headers_for(seeded.manager)
    response = client.get("/api/v1/admin/users?perPage=25&page=abc", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["per_page"] == 10
    assert body["meta"]["current_page"] == 1
    assert body["meta"]["from"] == 1
    assert {u["name"] for u in body["data"]} == {"Root", "Manager", "Member"}


def test_user_cannot_update_themselves(client, seeded):
    manager = seeded.manager
    response = client.put(
        f"/api/v1/admin/users/{manager['id']}",
        json={"name": "Boss", "email": manager["email"]},
        headers=seeded.db.headers_for(manager),
    )
    assert response.status_code == 403
    assert response.json()["detail"] == "You cannot update yourself."


def test_user_cannot_delete_themselves(client, seeded):
    manager = seeded.manager
    response = client.delete(f"/api/v1/admin/users/{manager['id']}", headers=seeded.db.headers_for(manager))
    assert response.status_code == 403
    assert response.json()["detail"] == "You cannot delete yourself."


def test_delete_other_user(client, seeded):
    response = client.delete(
        f"/api/v1/admin/users/{seeded.member['id']}", headers=seeded.db.headers_for(seeded.manager)
    )
    assert response.status_code == 204
    assert seeded.db.find("users", id=seeded.member["id"])["deleted_at"] is not None


def test_bulk_delete_users_accepts_comma_string(client, seeded):
    db = seeded.db
    response = client.request(
        "DELETE", "/api/v1/admin/users/bulk",
        json={"ids": f"{seeded.member['id']},{seeded.manager['id']}"},
        headers=db.headers_for(seeded.manager),
    )
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "You cannot delete yourself."}
    assert db.find("users", id=seeded.member["id"])["deleted_at"] is not None


def test_bulk_restore_and_force_delete(client, seeded):
    db = seeded.db
    headers = db.headers_for(seeded.root)
    gone = [db.add_user(f"Gone {i}", deleted=True)["id"] for i in range(2)]

    restored = client.post("/api/v1/admin/users/bulk/restore", json={"ids": gone[:1]}, headers=headers)
    assert restored.json() == {"success": True, "message": "User restored successfully."}

    forced = client.request(
        "DELETE", "/api/v1/admin/users/bulk/force-delete", json={"ids": gone}, headers=headers
    )
    assert forced.json() == {"success": True, "message": "User force deleted successfully."}
    assert db.find("users", id=gone[0]) is not None
    assert db.find("users", id=gone[1]) is None


def test_create_user_validation_error(client, seeded):
    response = client.post(
        "/api/v1/admin/users",
        json={"name": "New", "email": "new@example.com", "password": "secret123", "password_confirmation": "nope"},
        headers=seeded.db.headers_for(seeded.root),
    )
    assert response.status_code == 422


def test_create_and_show_user(client, seeded):
    headers = seeded.db.headers_for(seeded.root)
    created = client.post(
        "/api/v1/admin/users",
        json={"name": "New", "email": "new@example.com", "password": "secret123",
              "password_confirmation": "secret123", "roles": ["free"]},
        headers=headers,
    )
    assert created.status_code == 201

    shown = client.get(f"/api/v1/admin/users/{created.json()['id']}", headers=headers)
    assert shown.status_code == 200
    assert shown.json()["permissions"] == ["view tokens"]


def test_list_roles_merges_guards(client, seeded):
    db = seeded.db
    db.add_role("admin", "api")
    response = client.get("/api/v1/admin/roles", headers=db.headers_for(seeded.manager))

    assert response.status_code == 200
    roles = {role["name"]: role for role in response.json()["data"]}
    assert roles["admin"]["guards"] == ["web", "api"]
    assert response.json()["meta"]["total"] == 3


def test_delete_roles_reports_core_role(client, seeded):
    db = seeded.db
    core = db.find("roles", name="super-admin")
    free = db.find("roles", name="free")

    response = client.delete(f"/api/v1/admin/roles/{core['id']},{free['id']}", headers=db.headers_for(seeded.root))

    assert response.json() == {"success": False, "message": "The super-admin role cannot be deleted."}
    assert db.find("roles", name="free") is None


def test_rename_core_role_is_forbidden(client, seeded):
    db = seeded.db
    core = db.find("roles", name="super-admin")
    response = client.put(f"/api/v1/admin/roles/{core['id']}", json={"name": "root"}, headers=db.headers_for(seeded.root))
    assert response.status_code == 403


def test_role_form_permissions_grouped_by_guard(client, seeded):
    response = client.get("/api/v1/admin/roles/permissions", headers=seeded.db.headers_for(seeded.manager))
    assert response.status_code == 200
    grouped = response.json()
    assert set(grouped) == {"web", "api"}
    assert len(grouped["web"]) == 8


def test_create_role_then_details(client, seeded):
    headers = seeded.db.headers_for(seeded.manager)
    created = client.post(
        "/api/v1/admin/roles",
        json={"name": "auditor", "guards": ["web", "api"], "permissions": {"api": ["view tokens"]}},
        headers=headers,
    )
    assert created.status_code == 201
    web_row = created.json()[0]

    details = client.get(f"/api/v1/admin/roles/{web_row['id']}", headers=headers).json()
    assert details["guards"] == ["web", "api"]
    assert details["permissions_by_guard"] == {"api": ["view tokens"]}


def test_duplicate_permission_is_a_field_error(client, seeded):
    response = client.post(
        "/api/v1/admin/permissions", json={"name": "manage users"}, headers=seeded.db.headers_for(seeded.manager)
    )
    assert response.status_code == 422
    assert response.json()["detail"] == {"errors": {"name": ["The name has already been taken."]}}


def test_bulk_delete_permissions_keeps_core(client, seeded):
    db = seeded.db
    extra = db.add_permission("export reports")
    core = db.find("permissions", name="manage users", guard="web")

    response = client.request(
        "DELETE", "/api/v1/admin/permissions/bulk",
        json={"ids": [extra["id"], core["id"]]},
        headers=db.headers_for(seeded.manager),
    )

    assert response.json() == {"success": False, "message": 'Core permission "manage users" cannot be deleted.'}
    assert db.find("permissions", id=extra["id"]) is None


def test_malformed_user_id_is_not_found(client, seeded):
    response = client.get("/api/v1/admin/users/abc", headers=seeded.db.headers_for(seeded.manager))
    assert response.status_code == 404
    assert response.json()["detail"] == "User not found"


def test_bulk_delete_users_ignores_malformed_ids(client, seeded):
    response = client.request(
        "DELETE", "/api/v1/admin/users/bulk", json={"ids": ["1", "abc"]},
        headers=seeded.db.headers_for(seeded.manager),
    )
    assert response.status_code == 200
    assert response.json() == {"success": False, "message": "No users selected for deletion."}


def test_delete_roles_skips_malformed_ids(client, seeded):
    db = seeded.db
    free = db.find("roles", name="free")

    response = client.delete(f"/api/v1/admin/roles/{free['id']},abc", headers=db.headers_for(seeded.root))

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Role deleted successfully."}
    assert db.find("roles", name="free") is None
