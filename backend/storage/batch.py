"""Batch set/get/remove over the storage engine.

Each entry point expands the request body into filters or queries,
authorizes every address they resolve to, and only then touches the store.
Authorization is all-or-nothing: one denied address fails the whole batch
and the error lists every denied address.
"""

import logging
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from .address import ItemAddress, ItemQuery
from .engine import StoredValue, bulk_upsert, delete_items, find_items, store_operation
from .errors import AuthorizationError, ValidationError
from .expander import build_query, expand_filters, missing_address_fields, multi_valued_fields
from .permissions import Method, PermissionRule, denied_addresses

logger = logging.getLogger(__name__)

COLLECTION_KEY_SLOT = "collectionKey"


def _unique(addresses: Iterable[ItemAddress]) -> list[ItemAddress]:
    return list(dict.fromkeys(addresses))


def check_access(
    rules: Sequence[PermissionRule], addresses: Iterable[ItemAddress], verb: Method
) -> None:
    """Raise AuthorizationError listing every address the rules deny."""
    denied = denied_addresses(rules, _unique(addresses), verb)
    if denied:
        logger.warning("Denied '%s' on %d address(es)", verb.value, len(denied))
        raise AuthorizationError(verb.value, denied)


def resolve_queries(body: Mapping[str, Any]) -> list[ItemQuery]:
    """Queries for get/remove.

    With two or more multi-valued fields the body is zipped into one
    equality query per position. Otherwise a single query matches the
    scalar fields by equality and the (at most one) array field by
    membership.
    """
    if len(multi_valued_fields(body)) > 1:
        return [ItemQuery.from_filter(f) for f in expand_filters(body)]
    return [build_query(body)]


def shape_results(items: Sequence[StoredValue]) -> dict[str, dict[str, dict[str, Any]]]:
    """Nest items as ``namespace -> collection -> field_key -> value``.

    Each collection bucket records the collection key of the first item
    seen. A bucket spanning several collection keys keeps only that first
    one while later items still fill their field slots. An item whose field
    key is itself ``collectionKey`` shares that slot and overwrites it.
    """
    shaped: dict[str, dict[str, dict[str, Any]]] = {}
    first_keys: dict[tuple[str, str], str] = {}
    mixed: set[tuple[str, str]] = set()
    for item in items:
        address = item.address
        bucket_id = (address.namespace, address.collection)
        bucket = shaped.setdefault(address.namespace, {}).setdefault(address.collection, {})
        if bucket_id not in first_keys:
            first_keys[bucket_id] = bucket[COLLECTION_KEY_SLOT] = address.collection_key
        first_key = first_keys[bucket_id]
        if first_key != address.collection_key and bucket_id not in mixed:
            mixed.add(bucket_id)
            logger.warning(
                "Result for %s/%s spans several collection keys; reporting only %r",
                address.namespace,
                address.collection,
                first_key,
            )
        if address.field_key == COLLECTION_KEY_SLOT:
            logger.warning(
                "Field %r in %s/%s overwrites the reported collection key %r",
                COLLECTION_KEY_SLOT,
                address.namespace,
                address.collection,
                bucket[COLLECTION_KEY_SLOT],
            )
        bucket[address.field_key] = item.value
    return shaped


async def set_items(
    db: AsyncSession, rules: Sequence[PermissionRule], body: Mapping[str, Any]
) -> int:
    """Upsert every item described by the body.

    Returns:
        Number of items created or modified.

    Raises:
        ValidationError: If the body expands to nothing or to incomplete items.
        AuthorizationError: If any item is not settable by the caller.
        StoreError: If the store fails.
    """
    filters = expand_filters(body)
    if not filters or any(not f.is_complete for f in filters):
        missing = sorted({name for f in filters for name in missing_address_fields(f)})
        logger.info("Rejected set: incomplete items (missing %s)", missing or "all fields")
        raise ValidationError(
            "All fields (namespace, collection, collectionKey, fieldKey, value) must contain values."
        )

    check_access(rules, (f.address for f in filters), Method.SET)

    async with store_operation(db, "save items"):
        affected = await bulk_upsert(db, filters)
        await db.commit()
    logger.info("Set %d item(s), %d affected", len(filters), affected)
    return affected


async def get_items(
    db: AsyncSession, rules: Sequence[PermissionRule], body: Mapping[str, Any]
) -> dict[str, dict[str, dict[str, Any]]]:
    """Look up items and return them nested by namespace and collection.

    Raises:
        ValidationError: On mismatched array lengths.
        AuthorizationError: If any address the lookup can touch is not readable.
        StoreError: If the store fails.
    """
    queries = resolve_queries(body)
    check_access(rules, (a for q in queries for a in q.addresses()), Method.GET)

    async with store_operation(db, "retrieve items"):
        items = await find_items(db, queries)
    logger.info("Get matched %d item(s) across %d query part(s)", len(items), len(queries))
    return shape_results(items)


async def remove_items(
    db: AsyncSession, rules: Sequence[PermissionRule], body: Mapping[str, Any]
) -> int:
    """Delete every item matching the body.

    Returns:
        Number of items deleted; zero matches is not an error.

    Raises:
        ValidationError: If the body describes no combinations.
        AuthorizationError: If any address the removal can touch is not removable.
        StoreError: If the store fails.
    """
    queries = resolve_queries(body)
    if not queries or any(q.matches_nothing for q in queries) or not any(q.constraints() for q in queries):
        raise ValidationError("No valid combinations for removal.")

    check_access(rules, (a for q in queries for a in q.addresses()), Method.REMOVE)

    async with store_operation(db, "remove items"):
        deleted = await delete_items(db, queries)
        await db.commit()
    logger.info("Removed %d item(s)", deleted)
    return deleted
