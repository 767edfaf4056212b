import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import User
from app.schemas.auth import TokenData

logger = logging.getLogger(__name__)


async def get_user_by_external_id(db: AsyncSession, external_id: str) -> User | None:
    result = await db.execute(select(User).where(User.external_id == external_id))
    return result.scalar_one_or_none()


async def get_or_create_user(db: AsyncSession, identity: TokenData) -> User:
    """Map a verified identity to a user row, provisioning it on first sight."""
    user = await get_user_by_external_id(db, identity.subject)
    if user is not None:
        if identity.email and user.email != identity.email:
            user.email = identity.email
            await db.commit()
        return user

    # Use display name, or the local part of the email, or a generic fallback.
    name = identity.name or (identity.email.split("@")[0] if identity.email else "User")
    user = User(external_id=identity.subject, email=identity.email, name=name)
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Another request provisioned the same identity first.
        await db.rollback()
        user = await get_user_by_external_id(db, identity.subject)
        if user is None:
            raise
        return user
    await db.refresh(user)
    logger.info("Provisioned user", extra={"user_id": user.id})
    return user
