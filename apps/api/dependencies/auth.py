from collections.abc import Callable
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from apps.api.core.errors import ForbiddenError, UnauthorizedError, to_http_exception
from apps.api.tickets.state import UserRole


@dataclass(frozen=True)
class User:
    """Simple representation of an authenticated portal user."""

    id: str
    username: str
    role: UserRole
    company_id: str | None = None

    def has_role(self, role: UserRole) -> bool:
        return self.role is role


TOKEN_USER_MAP: dict[str, User] = {
    "admin-token": User(id="user-admin", username="admin", role=UserRole.ADMIN),
    "client-token": User(
        id="user-client", username="client", role=UserRole.CLIENT, company_id="company-acme"
    ),
}

bearer_scheme = HTTPBearer(auto_error=False)


def resolve_user_from_token(token: str | None) -> User | None:
    """Return the user associated with the provided bearer token, if any."""

    if token is None:
        return None

    user = TOKEN_USER_MAP.get(token)
    if user is None:
        raise to_http_exception(UnauthorizedError("Invalid authentication credentials"))
    return user


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(bearer_scheme)],
    request: Request,
) -> User:
    """Very small authentication stub.

    Static tokens map to known users. A real deployment verifies the token
    and loads the user, including the company it belongs to, from a datastore.
    """

    cached = getattr(request.state, "user", None)
    if isinstance(cached, User):
        return cached

    token = credentials.credentials if credentials is not None else None
    user = resolve_user_from_token(token)
    if user is None:
        raise to_http_exception(UnauthorizedError("Not authenticated"))
    request.state.user = user
    return user


def role_required(role: UserRole) -> Callable[[User], User]:
    """Dependency factory ensuring the current user has the requested role."""

    async def dependency(user: Annotated[User, Depends(get_current_user)]) -> User:
        if not user.has_role(role):
            raise to_http_exception(ForbiddenError("Insufficient permissions", required_role=role.value))
        return user

    return dependency


require_admin = role_required(UserRole.ADMIN)
require_client = role_required(UserRole.CLIENT)

CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
ClientUser = Annotated[User, Depends(require_client)]
