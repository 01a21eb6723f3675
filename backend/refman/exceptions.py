"""
RefMan Backend — Custom Exception Hierarchy
=============================================

What:  Application-specific exceptions for the error kinds the API exposes.
Why:   Services raise domain errors; global handlers (main.py) translate them
       into status codes and a consistent JSON body. Services never build
       HTTP responses themselves.
How:   Each exception carries a user-safe message and an optional context dict
       that is logged but not returned for server-side failures.

Exception Hierarchy:
    RefmanError (base)
    ├── ValidationError          → 400 Bad Request (invalid input, malformed id)
    ├── NotFoundError            → 404 Not Found (entry, item, keyword association)
    ├── ConflictError            → 409 Conflict (id already exists, concurrent tagging)
    ├── StorageError             → 500 Internal Server Error (backing store failure)
    │   ├── DatabaseError
    │   └── FileStorageError
    └── MetadataFetchError       → 502 Bad Gateway (remote page could not be scraped)

Propagation policy:
    The normalizer and the keyword reconciler never catch storage errors.
    Stores translate driver exceptions (SQLAlchemyError, OSError) into
    StorageError subclasses; everything else propagates unchanged.
    Nothing in the storage path is retried.
"""

from typing import Any, Dict, Optional


class RefmanError(Exception):
    """
    Base exception for all RefMan application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged; only echoed back for 4xx errors)
    """

    code = "internal_error"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(RefmanError):
    """
    Raised when client input fails business validation.

    When:    Empty entry payload, author name containing the delimiter,
             missing `from`/`to` on a rename, item id mismatch on PUT.
    HTTP:    400 Bad Request

    Schema-level problems (wrong JSON types) are still reported by FastAPI as 422.
    """

    code = "validation_error"

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(RefmanError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing rows and the filesystem raises
    FileNotFoundError; both are converted to this in the service layer.
    HTTP: 404 Not Found
    """

    code = "not_found"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(RefmanError):
    """
    Raised when a write collides with existing state.

    When:    Creating a flat-file item whose id already exists, or a keyword
             association that another transaction inserted concurrently
             (UNIQUE(entry_id, keyword) violation).
    HTTP:    409 Conflict
    """

    code = "conflict"

    def __init__(
        self,
        message: str = "The resource already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageError(RefmanError):
    """
    Backing store I/O or transaction failure.

    Treated as internal and fatal for the current unit of work. The message
    returned to the client is always generic; details are logged server-side.
    HTTP: 500 Internal Server Error
    """

    code = "server_error"

    def __init__(
        self,
        message: str = "A storage error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(StorageError):
    """A relational store query, insert, update or delete failed."""

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(StorageError):
    """
    Raised when flat-file store operations fail.

    When:    Permission denied, disk full, unparseable JSON in the storage root.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class MetadataFetchError(RefmanError):
    """
    Raised when a remote page cannot be fetched for metadata scraping.

    When:    After tenacity retries are exhausted, or the remote answered
             with an HTTP error status.
    HTTP:    502 Bad Gateway (the upstream site failed, not this service)
    """

    code = "metadata_fetch_error"

    def __init__(
        self,
        message: str = "Could not fetch metadata from the requested URL",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
