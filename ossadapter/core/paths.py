"""
Path prefix handling for object keys.

Object storage has no directories, only keys. The adapter can be rooted
under a prefix (``uploads/``), so every inbound path is prefixed and every
outbound key is stripped. ``strip(apply(p)) == p`` holds for any ``p``
that does not start with the delimiter.
"""

DELIMITER = "/"


class PathPrefixer:
    """Applies and strips the adapter's root prefix."""

    def __init__(self, prefix: str = "") -> None:
        prefix = (prefix or "").lstrip(DELIMITER).rstrip(DELIMITER)
        self.prefix = f"{prefix}{DELIMITER}" if prefix else ""

    def apply(self, path: str) -> str:
        """Turn a caller path into an object key."""
        return self.prefix + (path or "").lstrip(DELIMITER)

    def strip(self, key: str) -> str:
        """Turn an object key back into a caller path."""
        if self.prefix and key.startswith(self.prefix):
            return key[len(self.prefix):]
        return key

    def apply_directory(self, path: str) -> str:
        """
        Object key prefix for a directory.

        The bucket root (empty path, no prefix) is the empty string;
        everything else ends with exactly one delimiter.
        """
        key = self.apply(path).rstrip(DELIMITER)
        return f"{key}{DELIMITER}" if key else ""

    def strip_directory(self, key: str) -> str:
        """Caller path of a directory key, without the trailing delimiter."""
        return self.strip(key).rstrip(DELIMITER)
