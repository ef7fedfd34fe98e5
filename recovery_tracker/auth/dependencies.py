from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recovery_tracker.auth.models import User
from recovery_tracker.auth.schemas import CurrentUser
from recovery_tracker.auth.security import decode_access_token
from recovery_tracker.core.models import Teacher
from recovery_tracker.db.session import get_db


# Tokens are issued by the external identity provider; tokenUrl is only used by the OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token")


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> CurrentUser:
    """Resolve the authenticated user and linked teacher from the access token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
    except JWTError:
        raise credentials_exception

    user_id_str = payload.get("user_id") or payload.get("sub")
    if not user_id_str:
        raise credentials_exception
    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception

    user = await db.get(User, user_id)
    if not user or not user.is_active:
        raise credentials_exception

    teacher_result = await db.execute(
        select(Teacher.id).where(func.lower(Teacher.email) == user.email.lower())
    )
    teacher_id = teacher_result.scalar_one_or_none()

    return CurrentUser(
        id=user.id,
        email=user.email,
        role=user.role,
        teacher_id=teacher_id,
    )
