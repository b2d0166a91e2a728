"""Authorization contract used by the alert plugin instance service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from herald.auth.roles import ADMINISTRATOR, permissions_for_roles


@dataclass(frozen=True)
class Principal:
    """The caller an operation is performed for."""

    user_id: int | str
    username: str = ""
    roles: frozenset[str] = frozenset()
    # Actions granted on individual resources, keyed by resource id
    resource_grants: dict[int, frozenset[str]] = field(default_factory=dict, hash=False)

    @property
    def permissions(self) -> set[str]:
        return permissions_for_roles(self.roles)


class Authorizer(Protocol):
    def __call__(self, user: Principal | None, resource_id: int | None, action: str) -> bool: ...


class RoleAuthorizer:
    """Grant an action when the user's roles (or a resource grant) allow it."""

    def __call__(self, user: Principal | None, resource_id: int | None, action: str) -> bool:
        if user is None:
            return False

        permissions = user.permissions
        if ADMINISTRATOR in permissions or action in permissions:
            return True

        if resource_id is not None:
            return action in user.resource_grants.get(resource_id, frozenset())
        return False
