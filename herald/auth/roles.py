"""Role definitions for alert plugin instance management."""

from __future__ import annotations

from dataclasses import dataclass, field

# Actions checked by the alert plugin instance service
ALERT_INSTANCE_CREATE = "alert-instance:create"
ALERT_INSTANCE_UPDATE = "alert-instance:update"
ALERT_INSTANCE_DELETE = "alert-instance:delete"
ALERT_INSTANCE_MANAGE = "alert-instance:manage"

# Bypasses every permission check
ADMINISTRATOR = "administrator"


@dataclass
class RoleDefinition:
    """Definition of a role with its permissions."""

    name: str
    permissions: set[str] = field(default_factory=set)
    display_name: str | None = None
    description: str | None = None


def create_role(
    name: str,
    *permissions: str,
    display_name: str | None = None,
    description: str | None = None,
) -> RoleDefinition:
    """Create a role definition with the given permissions.

    Args:
        name: The unique identifier for the role
        *permissions: Permission strings granted by this role
        display_name: Human-readable name for the role
        description: Description of the role's purpose

    Returns:
        A RoleDefinition instance
    """
    return RoleDefinition(
        name=name,
        permissions=set(permissions),
        display_name=display_name or name.title(),
        description=description,
    )


ADMIN = create_role(
    "admin",
    ADMINISTRATOR,
    display_name="Administrator",
    description="Full access to every alert resource",
)

ALERT_MANAGER = create_role(
    "alert-manager",
    ALERT_INSTANCE_CREATE,
    ALERT_INSTANCE_UPDATE,
    ALERT_INSTANCE_DELETE,
    ALERT_INSTANCE_MANAGE,
    display_name="Alert Manager",
    description="Can create, edit and remove alert plugin instances",
)

ALERT_VIEWER = create_role(
    "alert-viewer",
    ALERT_INSTANCE_MANAGE,
    display_name="Alert Viewer",
    description="Can open alert plugin instances",
)

# Registry of all role definitions
ROLE_DEFINITIONS: dict[str, RoleDefinition] = {
    role.name: role for role in [ADMIN, ALERT_MANAGER, ALERT_VIEWER]
}


def get_role_definition(name: str) -> RoleDefinition | None:
    """Get a role definition by name."""
    return ROLE_DEFINITIONS.get(name)


def permissions_for_roles(role_names: set[str] | frozenset[str]) -> set[str]:
    """Union of the permissions granted by the named roles. Unknown roles grant nothing."""
    permissions: set[str] = set()
    for name in role_names:
        role = get_role_definition(name)
        if role:
            permissions |= role.permissions
    return permissions
