from .address import ItemAddress, ItemFilter, ItemQuery
from .batch import get_items, remove_items, set_items
from .errors import AuthorizationError, NotFoundError, StorageServiceError, StoreError, ValidationError
from .permissions import Method, PermissionRule, authorize, normalize_rules

__all__ = [
    "ItemAddress",
    "ItemFilter",
    "ItemQuery",
    "get_items",
    "remove_items",
    "set_items",
    "AuthorizationError",
    "NotFoundError",
    "StorageServiceError",
    "StoreError",
    "ValidationError",
    "Method",
    "PermissionRule",
    "authorize",
    "normalize_rules",
]
