"""
Typed failures raised by the storage adapter.

Every adapter operation either succeeds or raises one of these. The SDK's
error code (e.g. ``NoSuchKey``, ``AccessDenied``) is kept on ``code`` so
callers can tell "not found" apart from "not allowed" without parsing
messages.
"""

from typing import Optional


class StorageError(Exception):
    """Base class for all adapter failures."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        path: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.path = path

    @property
    def is_not_found(self) -> bool:
        """True when the underlying service reported a missing object."""
        return self.code in {"NoSuchKey", "NotFound", "404"}


class WriteFailed(StorageError):
    """Raised when an object could not be written."""
    pass


class ReadFailed(StorageError):
    """Raised when an object is missing or could not be read."""
    pass


class DeleteFailed(StorageError):
    """Raised when an object or directory could not be deleted."""
    pass


class CopyFailed(StorageError):
    """Raised when a server-side copy fails."""
    pass


class MoveFailed(StorageError):
    """
    Raised when either half of a move fails.

    Moves are copy-then-delete. If the delete fails after the copy
    succeeded, both the source and the destination exist.
    """
    pass


class ListFailed(StorageError):
    """Raised when a listing page could not be fetched."""
    pass


class MetadataFailed(StorageError):
    """Raised when object metadata could not be retrieved."""
    pass


class VisibilityFailed(StorageError):
    """Raised when an object ACL could not be read or applied."""
    pass


class SignFailed(StorageError):
    """Raised when the SDK signer could not produce a URL."""
    pass


class InvalidArgument(StorageError, ValueError):
    """Raised for local invariant violations (bad input, unknown bucket)."""
    pass
