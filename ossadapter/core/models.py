"""
Domain models for the storage adapter.

These models have no dependency on boto3 or FastAPI. The adapter builds
them from SDK responses; the API layer serializes them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import InvalidArgument


DIRECTORY_MIMETYPE = "application/octet-stream"


class EntryType(Enum):
    """Whether a listing entry is an object or a virtual directory."""
    FILE = "file"
    DIR = "dir"


class Visibility(Enum):
    """Object visibility, mapped onto canned ACLs."""
    PUBLIC = "public"
    PRIVATE = "private"

    @property
    def acl(self) -> str:
        return "public-read" if self is Visibility.PUBLIC else "private"

    @classmethod
    def parse(cls, value: "str | Visibility") -> "Visibility":
        if isinstance(value, Visibility):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise InvalidArgument(f"Invalid visibility: {value}")


@dataclass(frozen=True)
class StorageEntry:
    """
    One entry of a directory listing.

    ``path`` is always relative to the adapter's root prefix. Directories
    carry a trailing slash-free path, size 0 and the octet-stream mimetype.
    """
    path: str
    type: EntryType
    size: int = 0
    mimetype: str = DIRECTORY_MIMETYPE
    last_modified: Optional[int] = None
    etag: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        return self.type is EntryType.DIR

    @property
    def is_file(self) -> bool:
        return self.type is EntryType.FILE

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "type": self.type.value,
            "size": self.size,
            "mimetype": self.mimetype,
            "timestamp": self.last_modified,
            "etag": self.etag,
        }


@dataclass(frozen=True)
class ObjectMetadata:
    """Metadata returned by a HEAD request on a single object."""
    path: str
    size: int
    mimetype: str
    last_modified: Optional[int] = None
    etag: Optional[str] = None
    user_metadata: dict[str, str] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def type(self) -> EntryType:
        # A zero-byte octet-stream object is how markers look from a HEAD
        if self.size == 0 and self.mimetype == DIRECTORY_MIMETYPE:
            return EntryType.DIR
        return EntryType.FILE


@dataclass(frozen=True)
class BucketProfile:
    """
    Credentials, endpoint and bucket for one named storage target.

    ``endpoint`` is stored without a scheme; ``use_ssl`` records whether
    the configured endpoint started with ``https://``. Build profiles with
    :meth:`create` so the scheme is parsed off consistently.
    """
    access_key: str
    secret_key: str
    endpoint: str
    bucket: str
    is_cname: bool = False
    root: str = ""
    cdn_host: Optional[str] = None
    region: Optional[str] = None
    use_ssl: bool = False

    @classmethod
    def create(
        cls,
        access_key: str,
        secret_key: str,
        endpoint: str,
        bucket: str,
        is_cname: bool = False,
        root: str = "",
        cdn_host: Optional[str] = None,
        region: Optional[str] = None,
        use_ssl: bool = False,
    ) -> "BucketProfile":
        host, ssl = parse_endpoint(endpoint, default_ssl=use_ssl)
        return cls(
            access_key=access_key,
            secret_key=secret_key,
            endpoint=host,
            bucket=bucket,
            is_cname=is_cname,
            root=root or "",
            cdn_host=cdn_host or None,
            region=region or None,
            use_ssl=ssl,
        )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> "BucketProfile":
        """
        Build a profile from a loosely-keyed mapping.

        Accepts both the snake_case field names and the ``isCName`` /
        ``cdnHost`` spellings found in existing bucket configuration files.
        """
        return cls.create(
            access_key=data.get("access_key", ""),
            secret_key=data.get("secret_key", ""),
            endpoint=data.get("endpoint", ""),
            bucket=data.get("bucket", ""),
            is_cname=bool(data.get("is_cname", data.get("isCName", False))),
            root=data.get("root", data.get("prefix", "")) or "",
            cdn_host=data.get("cdn_host", data.get("cdnHost")),
            region=data.get("region"),
        )

    @property
    def scheme(self) -> str:
        return "https" if self.use_ssl else "http"

    @property
    def endpoint_url(self) -> str:
        """Endpoint URL handed to the SDK client."""
        return f"{self.scheme}://{self.endpoint}"

    @property
    def host(self) -> str:
        """Public base URL of the bucket, with a trailing slash."""
        if self.is_cname:
            domain = self.endpoint
        else:
            domain = f"{self.bucket}.{self.endpoint}"
        return f"{self.scheme}://{domain}".rstrip("/") + "/"


def parse_endpoint(endpoint: str, default_ssl: bool = False) -> tuple[str, bool]:
    """
    Split a configured endpoint into (host, use_ssl).

    ``https://x`` gives ``("x", True)``, ``http://x`` gives ``("x", False)``
    and an endpoint without a scheme keeps ``default_ssl``.
    """
    if endpoint.startswith("http://"):
        return endpoint[len("http://"):], False
    if endpoint.startswith("https://"):
        return endpoint[len("https://"):], True
    return endpoint, default_ssl


@dataclass(frozen=True)
class UploadPolicy:
    """
    Browser direct-upload configuration.

    Field names in :meth:`to_dict` follow what OSS browser upload
    clients expect (``accessid``, ``callback-var`` and so on).
    """
    access_id: str
    host: str
    policy: str
    signature: str
    expire: int
    directory: str
    callback: Optional[str] = None
    callback_var: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessid": self.access_id,
            "host": self.host,
            "policy": self.policy,
            "signature": self.signature,
            "expire": self.expire,
            "callback": self.callback,
            "callback-var": dict(self.callback_var),
            "dir": self.directory,
        }
