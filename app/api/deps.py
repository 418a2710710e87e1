# app/api/deps.py

from typing import AsyncGenerator, Optional

from fastapi import Header, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_session


# ------------------------------------------------------------
# DB Session
# ------------------------------------------------------------
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    async for session in get_session():
        yield session


# ------------------------------------------------------------
# Current admin (owner email used to scope queries)
# ------------------------------------------------------------
async def get_admin_email(
    x_admin_email: Optional[str] = Header(default=None, alias="X-Admin-Email"),
) -> str:
    """
    The caller identifies which admin's records it works on. The value is
    opaque here: it scopes queries and stamps new rows, nothing more.
    """
    if x_admin_email and x_admin_email.strip():
        return x_admin_email.strip().lower()

    if settings.ENV == "dev" and settings.DEFAULT_ADMIN_EMAIL:
        return settings.DEFAULT_ADMIN_EMAIL.lower()

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing X-Admin-Email header",
    )


# ------------------------------------------------------------
# Confirmation for irreversible actions
# ------------------------------------------------------------
def confirmation_required(action: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_428_PRECONDITION_REQUIRED,
        detail=f"{action} must be confirmed; repeat the request with confirm=true",
    )


def require_confirmation(action: str):
    """
    The UI shows its warning dialog first and then repeats the call with
    ?confirm=true. Without it nothing is changed.
    """

    async def checker(confirm: bool = Query(False, description=f"Confirm: {action}")) -> bool:
        if not confirm:
            raise confirmation_required(action)
        return True

    return checker
