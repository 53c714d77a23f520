"""
Credit ledger.

Each generation consumes one credit. The credit is held atomically before
any paid work starts, so two concurrent requests can never both pass the
check when only one credit remains. A request that fails afterwards gets
its credit back.
"""

from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import AsyncSessionLocal
from app.core.errors import (
    BestEffortResult,
    InsufficientCreditsError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from app.models import UserProfile

logger = structlog.get_logger(__name__)

GENERATION_COST = 1


class CreditService:
    """Read and mutate per-user credit balances."""

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or AsyncSessionLocal

    async def get_balance(self, user_id: str) -> int:
        """
        Current balance.

        Raises:
            NotFoundError: If the user has no profile
        """
        async with self.session_factory() as session:
            credits = await session.scalar(
                select(UserProfile.credits).where(UserProfile.id == user_id)
            )
        if credits is None:
            raise NotFoundError("Profile")
        return int(credits)

    async def reserve(self, user_id: str, amount: int = GENERATION_COST) -> int:
        """
        Atomically take ``amount`` credits if the balance allows it.

        Returns the balance after the reservation.

        Raises:
            InsufficientCreditsError: If the balance is below ``amount``
            NotFoundError: If the user has no profile
            StorageError: If the conditional update fails
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(UserProfile)
                    .where(UserProfile.id == user_id, UserProfile.credits >= amount)
                    .values(credits=UserProfile.credits - amount)
                    .returning(UserProfile.credits)
                )
                remaining = result.scalar_one_or_none()
                await session.commit()
        except Exception as e:
            logger.error("Credit reservation failed", user_id=user_id, error=str(e))
            raise StorageError("credit_reserve", e) from e

        if remaining is None:
            available = await self.get_balance(user_id)
            logger.info(
                "Insufficient credits",
                user_id=user_id,
                required=amount,
                available=available,
            )
            raise InsufficientCreditsError(required=amount, available=available)

        logger.debug("Credits reserved", user_id=user_id, amount=amount, remaining=remaining)
        return int(remaining)

    async def refund(self, user_id: str, amount: int = GENERATION_COST) -> BestEffortResult[int]:
        """Return a reserved credit after a failed request."""
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(UserProfile)
                    .where(UserProfile.id == user_id)
                    .values(credits=UserProfile.credits + amount)
                    .returning(UserProfile.credits)
                )
                balance = result.scalar_one_or_none()
                await session.commit()
        except Exception as e:
            logger.error("Credit refund failed", user_id=user_id, amount=amount, error=str(e))
            return BestEffortResult.failure("credit_refund", e)

        logger.info("Credits refunded", user_id=user_id, amount=amount, balance=balance)
        return BestEffortResult.success("credit_refund", balance)

    async def grant(self, user_id: str, amount: int, email: Optional[str] = None) -> int:
        """Add credits, creating the profile if needed. Returns the new balance."""
        if amount <= 0:
            raise ValidationError("Credit grant must be positive", fields={"amount": "must be > 0"})

        async with self.session_factory() as session:
            profile = await session.get(UserProfile, user_id)
            if profile is None:
                profile = UserProfile(id=user_id, email=email, credits=0)
                session.add(profile)
            profile.credits = (profile.credits or 0) + amount
            await session.commit()
            balance = profile.credits

        logger.info("Credits granted", user_id=user_id, amount=amount, balance=balance)
        return balance
