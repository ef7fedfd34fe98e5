from fastapi import Depends, HTTPException, status

from recovery_tracker.auth.dependencies import get_current_user
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.core.enums import UserRole


def require_role(*roles: str):
    """
    Dependency factory to enforce one of the given roles.

    Example:
        Depends(require_role("admin", "teacher"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Accesso negato: permessi insufficienti",
            )
        return current_user

    return _checker


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require the admin role. Used for imports, catalog edits and data resets."""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Accesso negato: solo gli amministratori possono eseguire questa azione",
        )
    return current_user


async def require_teacher(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Require a teacher account linked to a Teacher profile."""
    if current_user.role != UserRole.TEACHER.value:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Accesso riservato ai docenti")
    if current_user.teacher_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Profilo docente non collegato")
    return current_user


async def require_ledger_actor(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Admins act on any activity; everyone else must be a linked teacher acting on their own."""
    if current_user.is_admin:
        return current_user
    return await require_teacher(current_user)
