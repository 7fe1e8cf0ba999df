"""Role directory: resolves which role a user holds at read time.

Role-addressed notifications are visible to every holder of the role, so
readers that only know a user id ask the directory for the role.
"""

from abc import ABC, abstractmethod

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from wholesale.identity.user import User


class RoleDirectory(ABC):
    """Port for role membership lookups."""

    @abstractmethod
    def role_of(self, user_id: str) -> str | None:
        """Return the role held by ``user_id``, or None when unknown."""


class StaticRoleDirectory(RoleDirectory):
    """Fixed mapping of user id to role."""

    def __init__(self, roles: dict[str, str] | None = None) -> None:
        self._roles = dict(roles or {})

    def assign(self, user_id: str, role: str) -> None:
        self._roles[user_id] = role

    def role_of(self, user_id: str) -> str | None:
        return self._roles.get(user_id)


class UserRoleDirectory(RoleDirectory):
    """Looks the role up on the stored User aggregate."""

    def role_of(self, user_id: str) -> str | None:
        try:
            user = current_domain.repository_for(User).get(user_id)
        except ObjectNotFoundError:
            return None
        return user.role
