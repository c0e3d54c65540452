"""
Static permission catalog and role hierarchy.

The catalog is seeded once (see app.core.database.seed) and read-only at
runtime. `role_hierarchy_grants` is the single source of truth for what a
role may do beyond its explicit permission rows; the default Admin and Owner
permission sets are derived from it.
"""
from typing import Iterable

from app.features.permissions.models import RoleName, PermissionAction, PermissionResource


CRUD_ACTIONS = (
    PermissionAction.CREATE,
    PermissionAction.READ,
    PermissionAction.UPDATE,
    PermissionAction.DELETE,
)

CONCRETE_RESOURCES = (
    PermissionResource.TASK,
    PermissionResource.USER,
    PermissionResource.ORGANIZATION,
    PermissionResource.AUDIT_LOG,
)

ROLE_LEVELS: dict[RoleName, int] = {
    RoleName.OWNER: 3,
    RoleName.ADMIN: 2,
    RoleName.VIEWER: 1,
}

ROLE_DISPLAY_NAMES: dict[RoleName, tuple[str, str]] = {
    RoleName.OWNER: ("Owner", "Full system access and control"),
    RoleName.ADMIN: ("Administrator", "Administrative access with some restrictions"),
    RoleName.VIEWER: ("Viewer", "Read-only access to tasks and basic features"),
}

# (action, resource, display_name, description)
PERMISSION_CATALOG: list[tuple[PermissionAction, PermissionResource, str, str]] = [
    # Task permissions
    (PermissionAction.CREATE, PermissionResource.TASK, "Create Tasks", "Can create new tasks"),
    (PermissionAction.READ, PermissionResource.TASK, "Read Tasks", "Can view tasks"),
    (PermissionAction.UPDATE, PermissionResource.TASK, "Update Tasks", "Can modify tasks"),
    (PermissionAction.DELETE, PermissionResource.TASK, "Delete Tasks", "Can delete tasks"),
    (PermissionAction.MANAGE, PermissionResource.TASK, "Manage Tasks", "Full task management access"),

    # User permissions
    (PermissionAction.CREATE, PermissionResource.USER, "Create Users", "Can create new users"),
    (PermissionAction.READ, PermissionResource.USER, "Read Users", "Can view users"),
    (PermissionAction.UPDATE, PermissionResource.USER, "Update Users", "Can modify users"),
    (PermissionAction.DELETE, PermissionResource.USER, "Delete Users", "Can delete users"),
    (PermissionAction.MANAGE, PermissionResource.USER, "Manage Users", "Full user management access"),

    # Organization permissions
    (PermissionAction.READ, PermissionResource.ORGANIZATION, "Read Organization", "Can view organization info"),
    (PermissionAction.UPDATE, PermissionResource.ORGANIZATION, "Update Organization", "Can modify organization"),
    (PermissionAction.MANAGE, PermissionResource.ORGANIZATION, "Manage Organization", "Full organization management"),

    # Audit log permissions
    (PermissionAction.READ, PermissionResource.AUDIT_LOG, "Read Audit Logs", "Can view audit logs"),

    # Global permissions
    (PermissionAction.MANAGE, PermissionResource.ALL, "Manage All", "Full system access"),
]

VIEWER_PERMISSIONS: frozenset[tuple[PermissionAction, PermissionResource]] = frozenset({
    (PermissionAction.READ, PermissionResource.TASK),
    (PermissionAction.CREATE, PermissionResource.TASK),
    (PermissionAction.UPDATE, PermissionResource.TASK),
    (PermissionAction.READ, PermissionResource.ORGANIZATION),
    (PermissionAction.READ, PermissionResource.USER),
})


def permission_grants(
    granted_action: PermissionAction,
    granted_resource: PermissionResource,
    action: PermissionAction,
    resource: PermissionResource,
) -> bool:
    """
    Whether a permission row (granted_action, granted_resource) covers the
    requested (action, resource). `manage` widens the action, `all` the resource.
    """
    action_ok = granted_action == action or granted_action == PermissionAction.MANAGE
    resource_ok = granted_resource == resource or granted_resource == PermissionResource.ALL
    return action_ok and resource_ok


def role_hierarchy_grants(role_name: RoleName, action: PermissionAction, resource: PermissionResource) -> bool:
    """
    Role-level override, independent of explicit permission rows.

    Owner is granted everything. Admin is granted everything except blanket
    user management (manage:user). Viewer gets nothing from this path.
    """
    if role_name == RoleName.OWNER:
        return True
    if role_name == RoleName.ADMIN:
        return not (action == PermissionAction.MANAGE and resource == PermissionResource.USER)
    return False


def covered_pairs(
    action: PermissionAction,
    resource: PermissionResource,
) -> set[tuple[PermissionAction, PermissionResource]]:
    """Every requestable (action, resource) pair a permission row would grant."""
    actions: Iterable[PermissionAction] = (
        (*CRUD_ACTIONS, PermissionAction.MANAGE) if action == PermissionAction.MANAGE else (action,)
    )
    resources: Iterable[PermissionResource] = (
        (*CONCRETE_RESOURCES, PermissionResource.ALL) if resource == PermissionResource.ALL else (resource,)
    )
    return {(a, r) for a in actions for r in resources}


def default_role_permissions(role_name: RoleName) -> set[tuple[PermissionAction, PermissionResource]]:
    """
    Catalog rows a role receives at seed time.

    Owner and Admin get every row whose whole coverage is allowed by the
    hierarchy rule, so explicit rows never widen what the rule allows.
    """
    if role_name == RoleName.VIEWER:
        return set(VIEWER_PERMISSIONS)

    return {
        (action, resource)
        for action, resource, _, _ in PERMISSION_CATALOG
        if all(role_hierarchy_grants(role_name, a, r) for a, r in covered_pairs(action, resource))
    }
