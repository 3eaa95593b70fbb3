"""Authentication dependencies for admin endpoints.

The service sits behind the back-office gateway, which authenticates the
admin and forwards their identity in X-Actor-Id / X-Actor-Role headers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, HTTPException

from account_lifecycle.config import settings
from account_lifecycle.services.lifecycle_engine import Actor

logger = logging.getLogger(__name__)

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


@dataclass
class AuthenticatedUser:
    """Admin identity forwarded by the gateway."""

    user_id: str
    role: Optional[str]
    is_admin: bool

    @property
    def actor(self) -> Actor:
        return Actor(user_id=self.user_id, role=self.role)


def is_admin(role: Optional[str]) -> bool:
    """Check if a role is allowed to perform lifecycle operations."""
    return bool(role) and role in settings.admin_roles_list


async def get_current_user(
    x_actor_id: Optional[str] = Header(None, alias=ACTOR_ID_HEADER),
    x_actor_role: Optional[str] = Header(None, alias=ACTOR_ROLE_HEADER),
) -> Optional[AuthenticatedUser]:
    """
    Dependency to get the current user from gateway headers.

    Returns None if no identity was forwarded (anonymous access).

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: Optional[AuthenticatedUser] = Depends(get_current_user)):
            ...
    """
    if not x_actor_id or not x_actor_id.strip():
        return None

    role = x_actor_role.strip() if x_actor_role else None
    return AuthenticatedUser(
        user_id=x_actor_id.strip(),
        role=role,
        is_admin=is_admin(role),
    )


async def require_authenticated_user(
    user: Optional[AuthenticatedUser] = Depends(get_current_user),
) -> AuthenticatedUser:
    """
    Dependency that requires authentication.

    Raises 401 if not authenticated.
    """
    if not user:
        raise HTTPException(
            status_code=401,
            detail=f"Authentication required. Provide {ACTOR_ID_HEADER} header.",
        )
    return user


async def require_admin_user(
    user: AuthenticatedUser = Depends(require_authenticated_user),
) -> AuthenticatedUser:
    """
    Dependency that requires admin privileges.

    Raises 401 if not authenticated, 403 if not admin.

    Usage:
        @router.post("/admin-only")
        async def admin_only(user: AuthenticatedUser = Depends(require_admin_user)):
            ...
    """
    if not user.is_admin:
        logger.warning(f"Non-admin user {user.user_id} (role={user.role}) attempted admin action")
        raise HTTPException(
            status_code=403,
            detail="Admin privileges required",
        )
    return user
