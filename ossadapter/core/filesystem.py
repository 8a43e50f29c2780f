"""
The generic file-storage contract.

Code that only needs "a place to put files" depends on this protocol,
not on the OSS adapter, so tests and other backends can stand in for it.
Failures are always typed exceptions from :mod:`ossadapter.core.errors`.
"""

from typing import Any, BinaryIO, Iterator, Optional, Protocol, runtime_checkable

from .models import ObjectMetadata, StorageEntry, Visibility


@runtime_checkable
class Filesystem(Protocol):
    """Protocol for file storage operations."""

    def write(self, path: str, contents: bytes | str, options: Optional[dict[str, Any]] = None) -> None:
        """Create or overwrite a file."""
        ...

    def write_stream(self, path: str, stream: BinaryIO, options: Optional[dict[str, Any]] = None) -> None:
        """Create or overwrite a file from a binary stream."""
        ...

    def read(self, path: str) -> bytes:
        """Return the full contents of a file."""
        ...

    def read_stream(self, path: str) -> BinaryIO:
        """Return the contents of a file as a stream."""
        ...

    def delete(self, path: str) -> None:
        """Delete a file (or an empty directory marker)."""
        ...

    def delete_directory(self, path: str) -> int:
        """Delete a directory and everything below it. Returns count deleted."""
        ...

    def create_directory(self, path: str) -> StorageEntry:
        """Create an empty directory."""
        ...

    def copy(self, source: str, destination: str) -> None:
        """Copy a file or directory."""
        ...

    def move(self, source: str, destination: str) -> None:
        """Move a file or directory."""
        ...

    def exists(self, path: str) -> bool:
        """Check whether a file or directory exists."""
        ...

    def list_contents(self, path: str = "", recursive: bool = False) -> Iterator[StorageEntry]:
        """Lazily list the entries below a directory."""
        ...

    def get_metadata(self, path: str) -> ObjectMetadata:
        """Return metadata for a single file."""
        ...

    def set_visibility(self, path: str, visibility: Visibility | str) -> Visibility:
        """Make a file public or private."""
        ...

    def get_visibility(self, path: str) -> Visibility:
        """Return whether a file is public or private."""
        ...
