"""
Request-scoped dependencies shared by the route modules.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tutorbook.core.security import get_current_user_id
from tutorbook.db.session import get_db
from tutorbook.services.identity import CallerIdentity, resolve_caller


async def get_caller(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    return await resolve_caller(db, user_id)
