"""Batch key/value storage endpoints.

POST /api/storage/set   : Upsert items (all-or-nothing authorization)
POST /api/storage/get   : Look up items, nested by namespace and collection
POST /api/storage/remove: Delete matching items

Every addressing field may be a single value or an array. Arrays are
combined by position, so ``{"collectionKey": ["q1", "q2"], "fieldKey":
["a", "b"]}`` addresses ``(q1, a)`` and ``(q2, b)``.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth.identity import CallerIdentity, get_current_identity
from models import get_db
from storage import get_items, remove_items, set_items
from storage.errors import (
    AuthorizationError,
    NotFoundError,
    StorageServiceError,
    StoreError,
    ValidationError,
)
from throttle.rate_limiter import enforce_rate_limit

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/storage",
    tags=["storage"],
    dependencies=[Depends(enforce_rate_limit)],
)

AddressField = str | list[str] | None


class StorageRequest(BaseModel):
    # Older clients send app / collectionName / key
    namespace: AddressField = Field(None, validation_alias=AliasChoices("namespace", "app"))
    collection: AddressField = Field(
        None, validation_alias=AliasChoices("collection", "collectionName")
    )
    collection_key: AddressField = Field(
        None, validation_alias=AliasChoices("collectionKey", "collection_key")
    )
    field_key: AddressField = Field(
        None, validation_alias=AliasChoices("fieldKey", "field_key", "key")
    )
    value: Any = None

    def to_body(self) -> dict[str, Any]:
        """Fields the client actually sent, explicit nulls included."""
        return self.model_dump(exclude_unset=True)


class SetResponse(BaseModel):
    message: str
    affectedCount: int


class RemoveResponse(BaseModel):
    message: str
    deletedCount: int


def _http_error(error: StorageServiceError) -> HTTPException:
    """Translate a storage core error into an HTTP error."""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)
    if isinstance(error, AuthorizationError):
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "message": error.message,
                "denied": [address.to_denial() for address in error.denied],
            },
        )
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.message)
    if isinstance(error, StoreError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.message
        )
    logger.error("Unmapped storage error: %s", error)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Storage error")


@router.post("/set", response_model=SetResponse)
async def set_item(
    body: StorageRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Save or overwrite every item described by the body."""
    try:
        affected = await set_items(db, identity.rules, body.to_body())
    except StorageServiceError as e:
        raise _http_error(e)
    return SetResponse(message="Items saved/updated successfully", affectedCount=affected)


@router.post("/get")
async def get_item(
    body: StorageRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> dict[str, dict[str, dict[str, Any]]]:
    """Return matching items as ``{namespace: {collection: {collectionKey, <fieldKey>: value}}}``."""
    try:
        return await get_items(db, identity.rules, body.to_body())
    except StorageServiceError as e:
        raise _http_error(e)


@router.post("/remove", response_model=RemoveResponse)
async def remove_item(
    body: StorageRequest,
    identity: CallerIdentity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
):
    """Delete every item matching the body."""
    try:
        deleted = await remove_items(db, identity.rules, body.to_body())
    except StorageServiceError as e:
        raise _http_error(e)
    return RemoveResponse(message="Items removed successfully", deletedCount=deleted)
