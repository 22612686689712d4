"""Identity dependencies for API endpoints.

Callers are authenticated upstream; the gateway forwards the caller's opaque
user id and role in trusted headers (X-User-Id / X-User-Role by default).
"""

from collections.abc import Awaitable, Callable
from typing import Annotated

from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader

from hackteam.api.errors import ErrorCode, ForbiddenError, UnauthorizedError
from hackteam.config import settings
from hackteam.models.enums import UserRole

USER_ID_MAX_LENGTH = 64

# Identity header schemes
user_id_header = APIKeyHeader(name=settings.user_id_header, auto_error=False)
user_role_header = APIKeyHeader(name=settings.user_role_header, auto_error=False)

ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


class AuthContext:
    """Authenticated caller: an opaque user id plus a role."""

    def __init__(self, user_id: str, role: UserRole = UserRole.PARTICIPANT):
        self.user_id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def require_role(self, *roles: UserRole) -> None:
        """Raise ForbiddenError unless the caller has one of the given roles."""
        if self.role not in roles:
            raise ForbiddenError(
                "This operation requires an organizer role",
                code=ErrorCode.ADMIN_REQUIRED,
                details={"required_roles": [str(r) for r in roles]},
            )


def _parse_role(raw: str | None) -> UserRole:
    if not raw:
        return UserRole.PARTICIPANT
    try:
        return UserRole(raw.strip().lower())
    except ValueError:
        raise UnauthorizedError(
            f"Unknown role '{raw}' in {settings.user_role_header} header",
            code=ErrorCode.UNAUTHORIZED,
        ) from None


async def get_auth_context(
    request: Request,
    user_id: str | None = Security(user_id_header),
    role: str | None = Security(user_role_header),
) -> AuthContext:
    """Get the caller's identity from the request headers.

    Raises:
        UnauthorizedError: If the user id header is missing or malformed
    """
    if settings.auth_disabled and not user_id:
        # Development only: act as a fixed organizer
        dev_role = _parse_role(role) if role else UserRole.ADMIN
        auth_context = AuthContext(settings.dev_user_id, dev_role)
        request.state.auth = auth_context
        return auth_context

    if not user_id or not user_id.strip():
        raise UnauthorizedError(f"Missing {settings.user_id_header} header")

    user_id = user_id.strip()
    if len(user_id) > USER_ID_MAX_LENGTH:
        raise UnauthorizedError(
            f"{settings.user_id_header} must be at most {USER_ID_MAX_LENGTH} characters"
        )

    auth_context = AuthContext(user_id, _parse_role(role))
    request.state.auth = auth_context
    return auth_context


# Type alias for dependency injection
Auth = Annotated[AuthContext, Depends(get_auth_context)]


def require_role(*roles: UserRole) -> Callable[..., Awaitable[None]]:
    """Dependency factory that requires one of the given roles.

    Usage:
        @router.post("/admin-only")
        async def admin_endpoint(
            auth: Auth,
            _: None = Depends(require_role(UserRole.ADMIN))
        ):
            ...
    """

    async def check_role(auth: Auth) -> None:
        auth.require_role(*roles)

    return check_role


# Pre-built role dependencies
RequireAdmin = Depends(require_role(*ADMIN_ROLES))
