"""SQLAlchemy persistence for storage items.

Values are opaque to the store: they are kept as canonical JSON text
(sorted keys, compact separators) so equal payloads always serialize the
same way and can be matched by plain text comparison. Numbers therefore
match only when written the same way (`1` does not match `1.0`), and
NaN or Infinity are rejected because they have no JSON form.

None of these functions commit. The caller owns the transaction and wraps
the whole unit of work in ``store_operation``.
"""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from sqlalchemy import and_, delete, or_, select, true
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.storage_item import ADDRESS_COLUMNS, StorageItem
from models.user import User

from .address import ItemAddress, ItemFilter, ItemQuery
from .errors import StoreError, ValidationError

logger = logging.getLogger(__name__)

# 7 bound parameters per row keeps a chunk well under SQLite and asyncpg limits
UPSERT_CHUNK_SIZE = 500

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


@dataclass(frozen=True)
class StoredValue:
    address: ItemAddress
    value: Any


def encode_value(value: Any) -> str:
    try:
        return json.dumps(
            value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
        )
    except ValueError as exc:
        raise ValidationError("Values must not contain NaN or Infinity.") from exc


def decode_value(raw: str) -> Any:
    return json.loads(raw)


@asynccontextmanager
async def store_operation(db: AsyncSession, action: str):
    """Translate database failures inside the block into StoreError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Store failure while trying to %s", action)
        await db.rollback()
        raise StoreError(f"Failed to {action}") from exc


def _query_clause(query: ItemQuery):
    conditions = []
    for name, values in query.constraints().items():
        column = getattr(StorageItem, name)
        if name == "value":
            values = tuple(encode_value(v) for v in values)
        conditions.append(column == values[0] if len(values) == 1 else column.in_(values))
    return and_(true(), *conditions)


def _where(queries: Sequence[ItemQuery]):
    """OR of the queries, or None if none of them can match anything."""
    clauses = [_query_clause(q) for q in queries if not q.matches_nothing]
    if not clauses:
        return None
    return or_(*clauses)


async def bulk_upsert(db: AsyncSession, filters: Sequence[ItemFilter]) -> int:
    """Insert or overwrite one item per filter.

    Filters must be complete. When the same address appears more than once
    the last occurrence wins. Rows whose stored value is already equal are
    left untouched and not counted.

    Returns:
        Number of items created plus items whose value changed.
    """
    dialect = db.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise StoreError(f"Unsupported database dialect: {dialect}")

    now = datetime.now(timezone.utc)
    latest: dict[ItemAddress, ItemFilter] = {}
    for item_filter in filters:
        latest[item_filter.address] = item_filter

    # created_at steps by one microsecond per row so find_items keeps batch order
    values = [
        {
            "id": uuid.uuid4(),
            "namespace": item_filter.namespace,
            "collection": item_filter.collection,
            "collection_key": item_filter.collection_key,
            "field_key": item_filter.field_key,
            "value": encode_value(item_filter.value),
            "created_at": now + timedelta(microseconds=position),
            "updated_at": now,
        }
        for position, item_filter in enumerate(latest.values())
    ]

    table = StorageItem.__table__
    affected = 0
    for start in range(0, len(values), UPSERT_CHUNK_SIZE):
        stmt = insert(table).values(values[start:start + UPSERT_CHUNK_SIZE])
        stmt = stmt.on_conflict_do_update(
            index_elements=list(ADDRESS_COLUMNS),
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
            where=table.c.value != stmt.excluded.value,
        )
        result = await db.execute(stmt)
        affected += max(result.rowcount, 0)
    return affected


async def find_items(db: AsyncSession, queries: Sequence[ItemQuery]) -> list[StoredValue]:
    """Fetch items matching any of the queries, oldest first."""
    where = _where(queries)
    if where is None:
        return []
    result = await db.execute(
        select(
            StorageItem.namespace,
            StorageItem.collection,
            StorageItem.collection_key,
            StorageItem.field_key,
            StorageItem.value,
        )
        .where(where)
        .order_by(StorageItem.created_at.asc(), StorageItem.id.asc())
    )
    return [
        StoredValue(
            address=ItemAddress(row.namespace, row.collection, row.collection_key, row.field_key),
            value=decode_value(row.value),
        )
        for row in result.all()
    ]


async def delete_items(db: AsyncSession, queries: Sequence[ItemQuery]) -> int:
    """Delete items matching any of the queries and return how many went."""
    where = _where(queries)
    if where is None:
        return 0
    result = await db.execute(delete(StorageItem.__table__).where(where))
    return max(result.rowcount, 0)


async def clear_all(db: AsyncSession) -> tuple[int, int]:
    """Delete every storage item and every user.

    Returns:
        ``(items_deleted, users_deleted)``
    """
    items = await db.execute(delete(StorageItem.__table__))
    users = await db.execute(delete(User.__table__))
    return max(items.rowcount, 0), max(users.rowcount, 0)
