"""Item addresses and the filters and queries built over them.

An address names one stored value by ``(namespace, collection,
collection_key, field_key)``. Filters and queries may leave any of those
dimensions unconstrained; an unconstrained dimension is ``None`` on the
address they resolve to.
"""

from dataclasses import dataclass, fields
from itertools import product
from typing import Any

ADDRESS_FIELDS = ("namespace", "collection", "collection_key", "field_key")
FIELDS = ADDRESS_FIELDS + ("value",)

# JSON key used on the wire for each field
WIRE_NAMES = {
    "namespace": "namespace",
    "collection": "collection",
    "collection_key": "collectionKey",
    "field_key": "fieldKey",
    "value": "value",
}


class _NoValue:
    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = _NoValue()


@dataclass(frozen=True)
class ItemAddress:
    namespace: str | None = None
    collection: str | None = None
    collection_key: str | None = None
    field_key: str | None = None

    def to_denial(self) -> dict[str, str | None]:
        """Shape reported back to callers for a denied address."""
        return {
            "namespace": self.namespace,
            "collection": self.collection,
            "fieldKey": self.field_key,
        }


@dataclass(frozen=True)
class ItemFilter:
    """One concrete combination of request fields.

    ``None`` on an addressing field and ``NO_VALUE`` on ``value`` mean the
    field was absent (or explicitly null) in the request.
    """

    namespace: str | None = None
    collection: str | None = None
    collection_key: str | None = None
    field_key: str | None = None
    value: Any = NO_VALUE

    @property
    def address(self) -> ItemAddress:
        return ItemAddress(self.namespace, self.collection, self.collection_key, self.field_key)

    @property
    def has_value(self) -> bool:
        return self.value is not NO_VALUE

    @property
    def is_complete(self) -> bool:
        """True when every addressing field and the value are present."""
        return self.has_value and all(getattr(self, name) is not None for name in ADDRESS_FIELDS)


@dataclass(frozen=True)
class ItemQuery:
    """Conjunction of per-field constraints.

    Each field is either ``None`` (unconstrained) or a tuple of accepted
    values; a one-element tuple is plain equality and an empty tuple
    matches nothing.
    """

    namespace: tuple[str, ...] | None = None
    collection: tuple[str, ...] | None = None
    collection_key: tuple[str, ...] | None = None
    field_key: tuple[str, ...] | None = None
    value: tuple[Any, ...] | None = None

    @classmethod
    def from_filter(cls, item_filter: ItemFilter) -> "ItemQuery":
        constraints = {
            name: (getattr(item_filter, name),)
            for name in ADDRESS_FIELDS
            if getattr(item_filter, name) is not None
        }
        if item_filter.has_value:
            constraints["value"] = (item_filter.value,)
        return cls(**constraints)

    def constraints(self) -> dict[str, tuple]:
        """Constrained fields only, in field order."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @property
    def matches_nothing(self) -> bool:
        return any(len(values) == 0 for values in self.constraints().values())

    def addresses(self) -> list[ItemAddress]:
        """Every address this query can resolve to, without duplicates."""
        dimensions = [
            getattr(self, name) if getattr(self, name) is not None else (None,)
            for name in ADDRESS_FIELDS
        ]
        seen: dict[ItemAddress, None] = {}
        for combo in product(*dimensions):
            seen.setdefault(ItemAddress(*combo), None)
        return list(seen)
