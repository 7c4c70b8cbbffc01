"""
Referral Code Utilities
Handles generating unique referral codes for students
"""

import secrets
import string
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from app.models.user import User

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 6


def generate_referral_code(length: int = CODE_LENGTH) -> str:
    """Random uppercase alphanumeric code"""
    return ''.join(secrets.choice(CODE_ALPHABET) for _ in range(length))


async def generate_unique_referral_code(db: AsyncSession) -> str:
    """Generate a referral code not used by any other user"""

    for _ in range(20):
        candidate = generate_referral_code()
        result = await db.execute(select(User.id).where(User.referral_code == candidate))
        if result.scalar_one_or_none() is None:
            return candidate

    # Ultimate fallback: longer code
    return generate_referral_code(CODE_LENGTH + 4)


async def ensure_referral_code(user: User, db: AsyncSession) -> str:
    """Return the user's referral code, assigning one on first use"""
    if user.referral_code:
        return user.referral_code

    user.referral_code = await generate_unique_referral_code(db)
    await db.commit()
    return user.referral_code
