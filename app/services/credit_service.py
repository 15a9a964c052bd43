"""User / credit store: profile reads and atomic balance changes."""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import BadRequestError, NotFoundError
from app.models.user import User

logger = logging.getLogger(__name__)


async def get_profile(db: AsyncSession, user_id: str) -> User | None:
    return await db.get(User, user_id)


async def deduct_credits(db: AsyncSession, user_id: str, amount: int) -> bool:
    """Atomically take ``amount`` credits. False means insufficient funds.

    The balance check and the decrement are one conditional UPDATE, so two
    concurrent deductions can never overdraw the account. The caller owns
    the transaction.
    """
    if amount <= 0:
        raise BadRequestError("Credit amount must be positive")

    result = await db.execute(
        update(User)
        .where(User.id == user_id, User.credits >= amount)
        .values(credits=User.credits - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def add_credits(db: AsyncSession, user_id: str, amount: int) -> int:
    """Grant credits and return the new balance."""
    if amount <= 0:
        raise BadRequestError("Amount must be a positive number")

    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(credits=User.credits + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFoundError("User not found")

    balance = await db.scalar(select(User.credits).where(User.id == user_id))
    logger.info("Added %d credits to user %s (balance %d)", amount, user_id, balance)
    return balance


async def list_users(db: AsyncSession) -> list[User]:
    """All profiles, most recently active first."""
    stmt = select(User).order_by(User.last_login_at.desc().nulls_last(), User.created_at.desc())
    result = await db.execute(stmt)
    return list(result.scalars().all())
