from fastapi import Depends, HTTPException, status

from school_ledger.auth.dependencies import get_current_user
from school_ledger.auth.schemas import CurrentUser

SUPERUSER_ROLES = ("SUPER_ADMIN", "PLATFORM_ADMIN")


def has_capability(user: CurrentUser, module: str, action: str) -> bool:
    if user.role in SUPERUSER_ROLES:
        return True
    return f"{module}:{action}" in user.permissions


def check_permission(module: str, action: str):
    """
    Dependency factory to enforce a specific capability.

    Example:
        Depends(check_permission("payments", "allocate"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not has_capability(current_user, module, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

    return _checker
