"""
FastAPI Authentication Dependencies

The API gateway validates the bearer token and forwards the resulting
identity as headers:

    X-User-Id:    authenticated user id
    X-User-Roles: comma-separated role claims (e.g. "customer", "admin,staff")

Services only read this pre-validated context; they never see credentials.
"""

from dataclasses import dataclass, field
from typing import FrozenSet, Optional
import logging

from fastapi import Depends, Header, HTTPException, status

logger = logging.getLogger(__name__)

PRIVILEGED_ROLES = frozenset({"admin", "staff"})


@dataclass(frozen=True)
class CallerContext:
    """Identity and role claims of the caller"""
    user_id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    @property
    def is_staff(self) -> bool:
        return bool(self.roles & PRIVILEGED_ROLES)


def _parse_roles(raw: Optional[str]) -> FrozenSet[str]:
    if not raw:
        return frozenset()
    return frozenset(role.strip().lower() for role in raw.split(",") if role.strip())


async def require_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_roles: Optional[str] = Header(None, alias="X-User-Roles"),
) -> CallerContext:
    """
    Authentication dependency: a caller identity is required

    Raises:
        HTTPException 401: no identity forwarded by the gateway
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User authentication required"
        )
    return CallerContext(user_id=x_user_id.strip(), roles=_parse_roles(x_user_roles))


async def require_staff(caller: CallerContext = Depends(require_caller)) -> CallerContext:
    """
    Authorization dependency: caller must hold an admin or staff role

    Raises:
        HTTPException 403: caller lacks a privileged role
    """
    if not caller.is_staff:
        logger.warning(f"Caller {caller.user_id} denied privileged access")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin or staff role required"
        )
    return caller


__all__ = [
    "CallerContext",
    "PRIVILEGED_ROLES",
    "require_caller",
    "require_staff",
]
