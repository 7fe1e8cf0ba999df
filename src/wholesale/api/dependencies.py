"""Request dependencies: the acting user and the admission guard.

The upstream authentication layer forwards the already-verified identity
in trusted ``X-Actor-*`` headers.
"""

from fastapi import Header, Request

from wholesale.identity.user import SYSTEM_ACTOR_ID, Role, User
from wholesale.shared.admission import get_admission_guard, identifier_from_headers
from wholesale.shared.errors import UnauthorizedActorError, ValidationFailedError


def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: str = Header(...),
    x_actor_brand_id: str | None = Header(None),
) -> User:
    if x_actor_id == SYSTEM_ACTOR_ID:
        raise UnauthorizedActorError("The system actor cannot act over HTTP", actor_id=x_actor_id)
    if x_actor_role not in {r.value for r in Role}:
        raise ValidationFailedError(
            f"Unknown role {x_actor_role!r}",
            field="X-Actor-Role",
            allowed_roles=[r.value for r in Role],
        )
    return User(id=x_actor_id, role=x_actor_role, brand_id=x_actor_brand_id or None)


def admit(request: Request) -> None:
    """Throttle mutation callers before any domain code runs."""
    get_admission_guard().check(identifier_from_headers(request.headers))


def request_origin(request: Request) -> str:
    origin = identifier_from_headers(request.headers)
    if origin == "anonymous" and request.client is not None:
        return request.client.host
    return origin
