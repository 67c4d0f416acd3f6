"""HTTP routes."""

from typing import NoReturn

from fastapi import Depends, Header, HTTPException, status

from ..core.config import Settings
from ..core.exceptions import DomainException
from ..services.dependencies import get_app_settings


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    raise exc.to_http_exception()


def get_current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """User id asserted by the identity provider in front of this service."""
    if not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing user id")
    return x_user_id.strip()


async def require_admin(
    user_id: str = Depends(get_current_user_id),
    settings: Settings = Depends(get_app_settings),
) -> str:
    """
    Dependency for admin tooling.

    Example:
        @router.patch("/...", dependencies=[Depends(require_admin)])
    """
    if user_id not in settings.admin_user_ids:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user_id
