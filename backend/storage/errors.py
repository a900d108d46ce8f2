"""Error taxonomy for the storage core.

Validation and authorization errors are raised before anything reaches the
store; StoreError wraps failures of the persistence layer itself.
"""


class StorageServiceError(Exception):
    """Base class for all storage core errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(StorageServiceError):
    """Malformed or inconsistent request body."""


class AuthorizationError(StorageServiceError):
    """One or more resolved addresses are denied for the requested verb."""

    def __init__(self, verb: str, denied: list):
        self.verb = verb
        self.denied = denied
        super().__init__(f"You do not have '{verb}' permission for some items.")


class NotFoundError(StorageServiceError):
    """Lookup target is absent."""


class StoreError(StorageServiceError):
    """The persistence layer failed."""
