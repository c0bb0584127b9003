from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status

from reservations import settings
from reservations.scopes import OrderScope, VenueScope


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return "admin:scopes" in self.scopes

    def has_any(self, *scopes: str) -> bool:
        return any(s in self.scopes for s in scopes)


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the identity headers injected by the gateway after token validation.
    The token has already been verified; these headers are trusted.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("orders:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


def require_any_scope(*accepted: str):
    """Like require_scopes, but one of `accepted` is enough."""

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if not current_user.has_any(*accepted):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires one of: {', '.join(accepted)}",
            )
        return current_user

    return _dep


def is_order_admin(user: CurrentUser, *admin_scopes: str) -> bool:
    """Super-admins and holders of admin:orders (or any of `admin_scopes`)."""
    return user.is_admin or user.has_any(OrderScope.ADMIN, *admin_scopes)


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_read_venues = require_scopes(VenueScope.READ)
can_write_venues = require_scopes(VenueScope.ADMIN_WRITE)

can_read_order = require_any_scope(
    OrderScope.READ, OrderScope.ADMIN, OrderScope.ADMIN_READ
)
can_write_order = require_scopes(OrderScope.WRITE)
can_cancel_order = require_scopes(OrderScope.CANCEL)

can_audit_orders = require_any_scope(OrderScope.ADMIN, OrderScope.ADMIN_READ)
can_moderate_orders = require_any_scope(OrderScope.ADMIN, OrderScope.ADMIN_WRITE)
can_admin_delete_order = require_any_scope(OrderScope.ADMIN, OrderScope.ADMIN_DELETE)


# ---------------------------------------------------------------------------
# UsersClient: thin async wrapper around users-ms internal API
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_users_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.users_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class UsersClient:
    """
    Thin async wrapper around the users-ms internal API.
    Forwards the caller's identity headers so users-ms auth deps work normally.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_users_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        return {
            "X-User-Id": str(user.id),
            "X-Username": quote(user.username),
            "X-User-Scopes": " ".join(user.scopes),
        }

    async def get_by_ids(self, user_ids: set[UUID], user: CurrentUser) -> list[dict]:
        """Bulk-fetch users by ID for name enrichment. Fails silently."""
        if not user_ids:
            return []
        try:
            params = [("ids", str(uid)) for uid in user_ids]
            resp = await self._client.get(
                "/users/bulk", params=params, headers=self._headers(user)
            )
            if resp.status_code >= 400 or not resp.content:
                return []
            return resp.json()
        except (httpx.RequestError, ValueError):
            return []


_users_client = UsersClient()


def get_users_client() -> UsersClient:
    return _users_client
