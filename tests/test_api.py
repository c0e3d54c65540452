"""
End-to-end tests through the HTTP API.

Every gated request leaves exactly one audit row: a success row for a
granted request, an access_denied row for a denied one.
"""
from sqlalchemy import select, func, delete

from app.features.audit.models import AuditAction, AuditLog
from app.features.organizations.models import Organization
from app.features.permissions.dependencies import assign_role
from app.features.permissions.models import Role, RoleName, UserRole
from app.features.tasks.models import Task
from app.features.users.auth import issue_identity_token
from app.features.users.models import User
from tests.utils import auth_headers, count_audit_rows, create_task, create_user


async def _audit_rows(db):
    result = await db.execute(select(AuditLog).order_by(AuditLog.created_at))
    return result.scalars().all()


class TestAuthentication:

    async def test_public_endpoints(self, client):
        assert (await client.get("/health")).json() == {"status": "healthy"}
        assert (await client.get("/")).json()["status"] == "online"

    async def test_missing_token(self, client, world):
        response = await client.get("/tasks/")
        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client, world):
        response = await client.get("/tasks/", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_unknown_subject(self, client, world):
        token = issue_identity_token("01ZZZZZZZZZZZZZZZZZZZZZZZZ", world.acme.id)
        response = await client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    async def test_me_reports_roles(self, client, world):
        response = await client.get("/users/me", headers=auth_headers(world.admin_acme))
        assert response.status_code == 200
        body = response.json()
        assert body["email"] == "admin@example.com"
        assert body["role_names"] == ["admin"]


class TestScenarios:

    async def test_owner_creates_child_and_reads_its_task(self, client, db, world):
        response = await client.post(
            "/organizations/",
            json={"name": "Acme-Research", "parent_id": world.acme.id},
            headers=auth_headers(world.owner_acme),
        )
        assert response.status_code == 201
        child = response.json()
        assert child["parent_id"] == world.acme.id
        assert child["level"] == 2

        task = await create_task(db, world.eng, world.admin_eng, "eng work")
        before = await count_audit_rows(db)

        response = await client.get(f"/tasks/{task.id}", headers=auth_headers(world.owner_acme))
        assert response.status_code == 200
        assert response.json()["title"] == "eng work"

        rows = (await _audit_rows(db))[before:]
        assert len(rows) == 1
        assert rows[0].success is True
        assert rows[0].action == AuditAction.READ
        assert rows[0].resource_id == task.id

    async def test_child_admin_cannot_read_parent_task(self, client, db, world):
        task = await create_task(db, world.acme, world.owner_acme, "acme work")

        response = await client.get(f"/tasks/{task.id}", headers=auth_headers(world.admin_eng))
        assert response.status_code == 403

        rows = await _audit_rows(db)
        assert len(rows) == 1
        assert rows[0].success is False
        assert rows[0].action == AuditAction.ACCESS_DENIED
        assert rows[0].error_message == f"Cannot access organization {world.acme.id}"

    async def test_third_level_organization_rejected(self, client, db, world):
        response = await client.post(
            "/organizations/",
            json={"name": "Acme-Eng-Platform", "parent_id": world.eng.id},
            headers=auth_headers(world.owner_eng),
        )
        assert response.status_code == 409

        count = await db.scalar(
            select(func.count()).select_from(Organization).where(Organization.name == "Acme-Eng-Platform")
        )
        assert count == 0

    async def test_delete_empty_and_non_empty_organizations(self, client, db, world):
        response = await client.post(
            "/organizations/",
            json={"name": "Acme-Temp", "parent_id": world.acme.id},
            headers=auth_headers(world.owner_acme),
        )
        temp_id = response.json()["id"]

        response = await client.delete(f"/organizations/{temp_id}", headers=auth_headers(world.owner_acme))
        assert response.status_code == 204
        assert await db.scalar(select(Organization.id).where(Organization.id == temp_id)) is None

        response = await client.delete(f"/organizations/{world.eng.id}", headers=auth_headers(world.owner_acme))
        assert response.status_code == 409
        assert "existing users" in response.json()["detail"]
        assert await db.scalar(select(Organization.id).where(Organization.id == world.eng.id)) == world.eng.id


class TestTasks:

    async def test_viewer_cannot_delete_task(self, client, db, world):
        task = await create_task(db, world.acme, world.owner_acme)

        response = await client.delete(f"/tasks/{task.id}", headers=auth_headers(world.viewer_acme))
        assert response.status_code == 403
        assert await count_audit_rows(db, action=AuditAction.ACCESS_DENIED) == 1
        assert await count_audit_rows(db) == 1
        assert await db.scalar(select(Task.id).where(Task.id == task.id)) == task.id

    async def test_viewer_creates_and_completes_task(self, client, db, world):
        headers = auth_headers(world.viewer_acme)
        response = await client.post("/tasks/", json={"title": "Write report"}, headers=headers)
        assert response.status_code == 201
        task = response.json()
        assert task["organization_id"] == world.acme.id
        assert task["created_by_id"] == world.viewer_acme.id

        response = await client.patch(f"/tasks/{task['id']}", json={"status": "done"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["is_completed"] is True
        assert response.json()["completed_at"] is not None

        response = await client.patch(f"/tasks/{task['id']}", json={"title": "Final report"}, headers=headers)
        assert response.json()["completed_at"] is not None

        response = await client.patch(f"/tasks/{task['id']}", json={"status": "todo"}, headers=headers)
        assert response.json()["completed_at"] is None

    async def test_list_is_scoped(self, client, db, world):
        await create_task(db, world.acme, world.owner_acme, "acme")
        await create_task(db, world.eng, world.admin_eng, "eng")
        await create_task(db, world.globex, world.owner_globex, "globex")

        response = await client.get("/tasks/", params={"sort_by": "title", "sort_order": "asc"},
                                    headers=auth_headers(world.owner_acme))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert [task["title"] for task in body["tasks"]] == ["acme", "eng"]

        response = await client.get("/tasks/", headers=auth_headers(world.admin_eng))
        assert [task["title"] for task in response.json()["tasks"]] == ["eng"]

    async def test_assignee_from_other_organization_denied(self, client, db, world):
        response = await client.post(
            "/tasks/",
            json={"title": "Cross-org", "assignee_id": world.owner_globex.id},
            headers=auth_headers(world.owner_acme),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Cannot assign task to user from different organization"
        assert await db.scalar(select(func.count()).select_from(Task)) == 0

    async def test_create_in_child_organization(self, client, db, world):
        response = await client.post(
            "/tasks/",
            json={"title": "Delegated", "organization_id": world.eng.id, "assignee_id": world.viewer_eng.id},
            headers=auth_headers(world.admin_acme),
        )
        assert response.status_code == 201
        assert response.json()["organization_id"] == world.eng.id

    async def test_reorder_skips_unreachable_tasks(self, client, db, world):
        first = await create_task(db, world.acme, world.owner_acme, "first")
        second = await create_task(db, world.acme, world.owner_acme, "second")
        foreign = await create_task(db, world.globex, world.owner_globex, "foreign")

        response = await client.post(
            "/tasks/reorder",
            json={"task_ids": [second.id, foreign.id, first.id, "missing"]},
            headers=auth_headers(world.admin_acme),
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "updated": 2}

        orders = dict((await db.execute(
            select(Task.title, Task.order).execution_options(populate_existing=True)
        )).all())
        assert orders["second"] == 0
        assert orders["first"] == 2
        assert orders["foreign"] == 0


class TestScopedAssignments:

    async def test_owner_role_scoped_to_child_does_not_pass_owner_gates(self, client, db, world):
        user = await create_user(db, "mixed@example.com", world.acme, RoleName.ADMIN)
        await assign_role(db, user.id, RoleName.OWNER, world.eng.id)
        headers = auth_headers(user)

        response = await client.post("/organizations/", json={"name": "Rogue"}, headers=headers)
        assert response.status_code == 403
        assert response.json()["detail"] == "Requires one of roles: owner"

        response = await client.patch(f"/organizations/{world.acme.id}", json={"name": "Renamed"}, headers=headers)
        assert response.status_code == 403

        assert await db.scalar(select(func.count()).select_from(Organization).where(Organization.name == "Rogue")) == 0
        assert await count_audit_rows(db, action=AuditAction.ACCESS_DENIED) == 2

    async def test_principal_roles_exclude_other_organizations(self, client, db, world):
        user = await create_user(db, "scoped.viewer@example.com", world.acme, RoleName.VIEWER)
        await assign_role(db, user.id, RoleName.ADMIN, world.eng.id)

        response = await client.get("/users/", headers=auth_headers(user))
        assert response.status_code == 403

    async def test_deleting_organization_removes_assignments_scoped_to_it(self, client, db, world):
        await assign_role(db, world.viewer_acme.id, RoleName.ADMIN, world.ops.id)

        response = await client.delete(f"/organizations/{world.ops.id}", headers=auth_headers(world.owner_acme))
        assert response.status_code == 204

        remaining = await db.scalar(
            select(func.count()).select_from(UserRole).where(UserRole.organization_id == world.ops.id)
        )
        assert remaining == 0
        remaining = await db.scalar(
            select(func.count()).select_from(UserRole).where(UserRole.user_id == world.viewer_acme.id)
        )
        assert remaining == 1


class TestUsersAndRoles:

    async def test_failed_role_assignment_does_not_keep_user(self, client, db, world):
        await db.execute(delete(Role).where(Role.name == RoleName.VIEWER))
        await db.commit()

        response = await client.post(
            "/users/",
            json={
                "email": "half.created@example.com",
                "first_name": "Half",
                "last_name": "Created",
                "role": "viewer",
            },
            headers=auth_headers(world.owner_acme),
        )
        assert response.status_code == 409
        assert await db.scalar(select(User.id).where(User.email == "half.created@example.com")) is None
        assert await count_audit_rows(db, action=AuditAction.CREATE) == 0

    async def test_admin_cannot_assign_roles(self, client, db, world):
        response = await client.post(
            f"/users/{world.viewer_acme.id}/roles",
            json={"role": "admin"},
            headers=auth_headers(world.admin_acme),
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Insufficient permissions to manage user"
        assert await count_audit_rows(db, success=False) == 1

    async def test_admin_may_update_user(self, client, db, world):
        response = await client.patch(
            f"/users/{world.viewer_acme.id}",
            json={"first_name": "Vera"},
            headers=auth_headers(world.admin_acme),
        )
        assert response.status_code == 200
        assert response.json()["first_name"] == "Vera"

    async def test_owner_assigns_and_removes_role(self, client, db, world):
        headers = auth_headers(world.owner_acme)
        response = await client.post(
            f"/users/{world.viewer_eng.id}/roles",
            json={"role": "admin", "organization_id": world.eng.id},
            headers=headers,
        )
        assert response.status_code == 201
        assert response.json()["organization_id"] == world.eng.id
        assert response.json()["role"]["name"] == "admin"

        response = await client.get(f"/users/{world.viewer_eng.id}", headers=headers)
        assert response.json()["role_names"] == ["admin", "viewer"]

        response = await client.delete(f"/users/{world.viewer_eng.id}/roles/admin", headers=headers)
        assert response.status_code == 200
        assert response.json()["removed"] == 1

        active = await db.scalar(
            select(func.count()).select_from(UserRole)
            .where(UserRole.user_id == world.viewer_eng.id, UserRole.is_active == True)  # noqa: E712
        )
        assert active == 1

    async def test_owner_cannot_assign_roles_in_unreachable_organization(self, client, db, world):
        response = await client.post(
            f"/users/{world.viewer_acme.id}/roles",
            json={"role": "viewer", "organization_id": world.globex.id},
            headers=auth_headers(world.owner_acme),
        )
        assert response.status_code == 403
        assert await count_audit_rows(db, action=AuditAction.ACCESS_DENIED) == 1

    async def test_create_user_with_role(self, client, db, world):
        response = await client.post(
            "/users/",
            json={
                "email": "new.hire@example.com",
                "first_name": "New",
                "last_name": "Hire",
                "organization_id": world.ops.id,
                "role": "viewer",
            },
            headers=auth_headers(world.owner_acme),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["organization_id"] == world.ops.id
        assert body["role_names"] == ["viewer"]

    async def test_duplicate_email(self, client, world):
        response = await client.post(
            "/users/",
            json={"email": "viewer@example.com", "first_name": "Dup", "last_name": "User"},
            headers=auth_headers(world.admin_acme),
        )
        assert response.status_code == 409

    async def test_cannot_delete_self(self, client, world):
        response = await client.delete(f"/users/{world.owner_acme.id}", headers=auth_headers(world.owner_acme))
        assert response.status_code == 409

    async def test_viewer_cannot_list_users(self, client, db, world):
        response = await client.get("/users/", headers=auth_headers(world.viewer_acme))
        assert response.status_code == 403
        assert response.json()["detail"] == "Requires one of roles: admin, owner"


class TestAuditLogRoutes:

    async def test_viewer_denied(self, client, db, world):
        response = await client.get("/audit-log/", headers=auth_headers(world.viewer_acme))
        assert response.status_code == 403
        assert await count_audit_rows(db, action=AuditAction.ACCESS_DENIED, resource="audit_log") == 1

    async def test_admin_lists_own_organization(self, client, db, world):
        task = await create_task(db, world.acme, world.owner_acme)
        await client.delete(f"/tasks/{task.id}", headers=auth_headers(world.viewer_acme))
        await client.get("/tasks/", headers=auth_headers(world.owner_globex))

        response = await client.get("/audit-log/", headers=auth_headers(world.admin_acme))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["pages"] == 1
        assert body["items"][0]["action"] == "access_denied"
        assert body["items"][0]["user_id"] == world.viewer_acme.id

    async def test_export(self, client, db, world):
        await client.get("/tasks/", headers=auth_headers(world.owner_acme))

        response = await client.get("/audit-log/export", headers=auth_headers(world.owner_acme))
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"].startswith('attachment; filename="audit-logs-')

        lines = response.text.strip().split("\n")
        assert lines[0] == "Date,Action,Resource,User,Email,IP Address,Status,Error"
        assert len(lines) == 2
        assert ",read,task," in lines[1]


class TestPermissionRoutes:

    async def test_catalog(self, client, world):
        response = await client.get("/permissions/", headers=auth_headers(world.viewer_acme))
        assert response.status_code == 200
        assert len(response.json()) == 15

        response = await client.get("/permissions/", params={"resource": "user"}, headers=auth_headers(world.viewer_acme))
        assert {item["identifier"] for item in response.json()} == {
            "create:user", "read:user", "update:user", "delete:user", "manage:user"
        }

    async def test_roles(self, client, world):
        response = await client.get("/permissions/roles", headers=auth_headers(world.viewer_acme))
        assert [(role["name"], len(role["permissions"])) for role in response.json()] == [
            ("owner", 15), ("admin", 13), ("viewer", 5)
        ]

    async def test_check(self, client, db, world):
        headers = auth_headers(world.admin_acme)
        response = await client.post("/permissions/check", json={"action": "delete", "resource": "task"}, headers=headers)
        assert response.json() == {"has_permission": True, "reason": None}

        response = await client.post(
            "/permissions/check",
            json={"action": "read", "resource": "task", "organization_id": world.globex.id},
            headers=headers,
        )
        assert response.json()["has_permission"] is False
        assert response.json()["reason"] == f"Cannot access organization {world.globex.id}"

        assert await count_audit_rows(db, success=True) == 1
        assert await count_audit_rows(db, success=False) == 1
