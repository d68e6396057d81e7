"""
User rows. Provisioned from the authenticated principal.
"""

import logging
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..models.base import utcnow
from ..models.user import User

logger = logging.getLogger(__name__)


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    return await db.get(User, user_id)


async def upsert_user(db: AsyncSession, principal: AuthenticatedUser) -> tuple[User, bool]:
    """
    Create the user on first sight, otherwise refresh profile fields from the token.
    Returns (user, created).
    """
    user = await db.get(User, principal.user_id)
    if user is None:
        user = User(
            id=principal.user_id,
            email=principal.email or None,
            first_name=principal.first_name or None,
            last_name=principal.last_name or None,
            role=principal.role,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            # Concurrent first request already provisioned this user
            await db.rollback()
            user = await db.get(User, principal.user_id)
            if user is None:
                raise
            return user, False
        logger.info("Provisioned user %s", principal.user_id)
        return user, True

    changed = False
    for attr, value in (
        ("email", principal.email),
        ("first_name", principal.first_name),
        ("last_name", principal.last_name),
    ):
        if value and getattr(user, attr) != value:
            setattr(user, attr, value)
            changed = True
    if changed:
        user.updated_at = utcnow()
        await db.commit()
    return user, False


async def increment_usage(db: AsyncSession, user_id: str, amount: int = 1) -> None:
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(plan_usage=User.plan_usage + amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


async def count_active_users(db: AsyncSession) -> int:
    result = await db.execute(
        select(func.count()).select_from(User).where(User.is_active.is_(True))
    )
    return int(result.scalar() or 0)
