"""Administrative endpoints, authenticated by a shared secret instead of JWT."""

import logging
import secrets

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import get_db
from storage.engine import clear_all, store_operation
from storage.errors import StoreError
from throttle.rate_limiter import enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(enforce_rate_limit)],
)


class ClearAllRequest(BaseModel):
    password: str


class ClearAllResponse(BaseModel):
    message: str
    deletedItems: int
    deletedUsers: int


def require_clear_all_key(body: ClearAllRequest) -> None:
    """Raise unless the body carries the configured CLEAR_ALL_KEY."""
    try:
        expected = settings.clear_all_key
    except ValueError:
        logger.error("Clear-all requested but CLEAR_ALL_KEY is not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Clear-all is not configured"
        )
    if not secrets.compare_digest(body.password.encode(), expected.encode()):
        logger.warning("Clear-all rejected: bad password")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication Failed.")


@router.post("/clear-all", response_model=ClearAllResponse)
async def clear_all_items(body: ClearAllRequest, db: AsyncSession = Depends(get_db)):
    """Delete every stored item and every user record."""
    require_clear_all_key(body)
    try:
        async with store_operation(db, "clear storage"):
            items, users = await clear_all(db)
            await db.commit()
    except StoreError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=e.message)

    logger.warning(f"Clear-all wiped {items} item(s) and {users} user(s)")
    return ClearAllResponse(
        message="All items cleared successfully", deletedItems=items, deletedUsers=users
    )
