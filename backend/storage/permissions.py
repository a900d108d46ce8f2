"""Permission rules and the evaluator that gates every storage operation.

A rule scopes access on three levels: namespace, collection and field key.
Each level is either a concrete value or a wildcard. Rules arrive from the
auth service in two shapes:

    {"namespace": "app", "collection": null, "key": null, "methods": ["get"]}
    ["app", null, null, ["get"]]                       # legacy positional form

Both are normalized once, when the caller identity is built, into
``PermissionRule``. ``null``, ``""`` and a missing field all mean wildcard.
There are no deny rules: access is granted if any rule grants it.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from .address import ItemAddress

logger = logging.getLogger(__name__)


class Method(str, enum.Enum):
    GET = "get"
    SET = "set"
    REMOVE = "remove"


@dataclass(frozen=True)
class PermissionRule:
    """Canonical rule. ``None`` on a scope field is the wildcard."""

    namespace: str | None = None
    collection: str | None = None
    key: str | None = None
    methods: frozenset[str] = frozenset()

    def grants(self, address: ItemAddress, verb: str) -> bool:
        # The key dimension scopes the field key, not the collection key.
        return (
            verb in self.methods
            and _scope_matches(self.namespace, address.namespace)
            and _scope_matches(self.collection, address.collection)
            and _scope_matches(self.key, address.field_key)
        )


def _scope_matches(scope: str | None, value: str | None) -> bool:
    return scope is None or scope == value


def _wildcard(value: Any) -> Any:
    return None if value is None or value == "" else value


def _methods(raw: Any) -> frozenset[str] | None:
    if isinstance(raw, (str, bytes)) or not isinstance(raw, (list, tuple, set, frozenset)):
        return None
    if not all(isinstance(m, str) for m in raw):
        return None
    return frozenset(raw)


def _pick(raw: Mapping[str, Any], name: str, legacy_name: str) -> Any:
    return raw[name] if name in raw else raw.get(legacy_name)


def normalize_rule(raw: Any) -> PermissionRule | None:
    """Normalize one raw rule, or return None if it grants nothing.

    Object rules must carry ``methods``; positional rules must have exactly
    four elements. A ``methods`` value that is not a collection of strings
    makes the whole rule contribute no permissions.
    """
    if isinstance(raw, Mapping):
        if "methods" not in raw:
            return None
        namespace = _pick(raw, "namespace", "app")
        collection = _pick(raw, "collection", "collectionName")
        key = raw.get("key")
        methods = raw["methods"]
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        namespace, collection, key, methods = raw
    else:
        return None

    method_set = _methods(methods)
    if method_set is None:
        return None
    return PermissionRule(
        namespace=_wildcard(namespace),
        collection=_wildcard(collection),
        key=_wildcard(key),
        methods=method_set,
    )


def normalize_rules(raw_rules: Any) -> tuple[PermissionRule, ...]:
    """Normalize a caller's rule collection, dropping malformed entries."""
    if not isinstance(raw_rules, (list, tuple)):
        if raw_rules is not None:
            logger.warning("Ignoring access rules of type %s", type(raw_rules).__name__)
        return ()
    rules = []
    for raw in raw_rules:
        rule = normalize_rule(raw)
        if rule is None:
            logger.debug("Dropping malformed access rule: %r", raw)
            continue
        rules.append(rule)
    return tuple(rules)


def authorize(rules: Iterable[PermissionRule], address: ItemAddress, verb: str | Method) -> bool:
    """Return True if any rule grants ``verb`` on ``address``."""
    verb = Method(verb).value
    return any(rule.grants(address, verb) for rule in rules)


def denied_addresses(
    rules: Sequence[PermissionRule], addresses: Iterable[ItemAddress], verb: str | Method
) -> list[ItemAddress]:
    """Every address the rules do not grant, in order. Never short-circuits."""
    return [address for address in addresses if not authorize(rules, address, verb)]
