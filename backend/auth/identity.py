"""Caller identity handed to the storage core.

The core only ever sees the caller's id and their permission rules,
normalized once here so evaluation never has to re-sniff rule shapes.
"""

import uuid
import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import get_current_user_id
from models import User, get_db
from storage.errors import NotFoundError
from storage.permissions import PermissionRule, normalize_rules

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerIdentity:
    user_id: uuid.UUID
    rules: tuple[PermissionRule, ...]


async def load_identity(db: AsyncSession, user_id: uuid.UUID) -> CallerIdentity:
    """Build the identity for a user from their stored access rules.

    Raises:
        NotFoundError: If the user record no longer exists.
    """
    result = await db.execute(select(User.access).where(User.id == user_id))
    row = result.one_or_none()
    if row is None:
        raise NotFoundError("User not found")
    rules = normalize_rules(row.access)
    logger.debug("Loaded %d access rule(s) for user %s", len(rules), user_id)
    return CallerIdentity(user_id=user_id, rules=rules)


async def get_current_identity(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> CallerIdentity:
    """FastAPI dependency resolving the bearer token to a CallerIdentity."""
    try:
        return await load_identity(db, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message)
