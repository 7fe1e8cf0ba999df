"""User aggregate: the already-authenticated actor behind every command.

Users are provisioned by the authentication layer; this core only reads
them and asks them permission questions.
"""

from enum import Enum

from protean.fields import Identifier, String

from wholesale.domain import wholesale

SYSTEM_ACTOR_ID = "system"


class Role(Enum):
    BUYER = "BUYER"
    BRAND_ADMIN = "BRAND_ADMIN"
    MASTER_ADMIN = "MASTER_ADMIN"


class UserStatus(Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    DELETED = "DELETED"


ADMIN_ROLES = (Role.MASTER_ADMIN.value, Role.BRAND_ADMIN.value)


@wholesale.aggregate
class User:
    """A buyer or an administrator of one brand or of the whole platform.

    ``brand_id`` is only meaningful for brand administrators. A brand
    administrator without one cannot manage any brand.
    """

    email = String(max_length=255)
    role = String(required=True, choices=Role)
    status = String(choices=UserStatus, default=UserStatus.ACTIVE.value)
    brand_id = Identifier()

    def can_manage_brand(self, brand_id) -> bool:
        if self.role == Role.MASTER_ADMIN.value:
            return True
        return self.role == Role.BRAND_ADMIN.value and self.brand_id is not None and self.brand_id == brand_id

    def can_place_order(self) -> bool:
        return self.status == UserStatus.ACTIVE.value and self.role in {r.value for r in Role}

    def can_access_admin_panel(self) -> bool:
        return self.role in ADMIN_ROLES

    def can_manage_all_brands(self) -> bool:
        return self.role == Role.MASTER_ADMIN.value

    def can_view_all_orders(self) -> bool:
        return self.role == Role.MASTER_ADMIN.value

    @property
    def is_system(self) -> bool:
        return self.id == SYSTEM_ACTOR_ID


def system_actor() -> User:
    """The actor used when the core mutates state on its own behalf."""
    return User(id=SYSTEM_ACTOR_ID, role=Role.MASTER_ADMIN.value)


def build_actor(actor_id, actor_role, actor_brand_id=None) -> User:
    """Rebuild the acting user from already-authenticated claims."""
    if actor_id == SYSTEM_ACTOR_ID:
        return system_actor()
    return User(id=actor_id, role=actor_role, brand_id=actor_brand_id or None)
