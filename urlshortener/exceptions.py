"""Error taxonomy for the URL shortener core.

Client input errors derive from ``InvalidRequestError`` (and ``ValueError``, so
callers that only know about ``ValueError`` keep working). Backend failures
derive from ``BackendError``. ``InternalError`` marks an invariant violation.

Resolution misses are not errors: ``ShortenerEngine.resolve`` returns
``("", False)``.
"""

__all__ = [
    "ShortenerError",
    "InvalidRequestError",
    "EmptyURLError",
    "InvalidCustomTokenError",
    "DuplicateCustomTokenError",
    "BackendError",
    "StoreUnavailableError",
    "CacheUnavailableError",
    "UniqueViolationError",
    "InternalError",
]


class ShortenerError(Exception):
    """Base class for every error raised by the core."""


class InvalidRequestError(ShortenerError, ValueError):
    """Caller supplied input that can never succeed as-is."""


class EmptyURLError(InvalidRequestError):
    def __init__(self) -> None:
        super().__init__("original_url cannot be empty")


class InvalidCustomTokenError(InvalidRequestError):
    def __init__(self, token: str) -> None:
        super().__init__(
            f"Custom token '{token}' may only contain letters, digits, '-' and '_'"
        )
        self.token = token


class DuplicateCustomTokenError(InvalidRequestError):
    def __init__(self, token: str) -> None:
        super().__init__(f"Custom token '{token}' is already taken")
        self.token = token


class BackendError(ShortenerError):
    """A storage backend could not complete the operation."""


class StoreUnavailableError(BackendError):
    pass


class CacheUnavailableError(BackendError):
    pass


class UniqueViolationError(ShortenerError):
    """Raised by the store when a generated entry collides with an existing row.

    ``custom_collision`` is True when the row holding ``token`` is a custom
    entry (no numeric id), i.e. a caller reserved the Base62 form of an id
    before the allocator reached it.
    """

    def __init__(self, token: str, custom_collision: bool = False) -> None:
        super().__init__(f"Token '{token}' already exists")
        self.token = token
        self.custom_collision = custom_collision


class InternalError(ShortenerError):
    """An invariant the core relies on did not hold."""
