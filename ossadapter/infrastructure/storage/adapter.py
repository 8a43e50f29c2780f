"""
OSS filesystem adapter.

Maps the generic :class:`~ossadapter.core.filesystem.Filesystem` contract
onto object storage calls. Object storage is flat: a "directory" is either
a zero-byte marker key ending in ``/`` or a common prefix inferred from
the keys below it. Listing and deleting directories therefore walk the
key space page by page with ``Delimiter='/'``.

Directory policy:
- ``delete``, ``copy``, ``move`` and ``exists`` treat a path as a
  directory when its ``path/`` marker key exists.
- ``delete_directory`` always treats its argument as a prefix.
- Children are deleted (and copied) before the marker itself.

Every SDK failure is re-raised as a typed error from
:mod:`ossadapter.core.errors`, carrying the service's error code.
"""

import io
import logging
import mimetypes
import time
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, BinaryIO, Iterator, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ...core.errors import (
    CopyFailed,
    DeleteFailed,
    InvalidArgument,
    ListFailed,
    MetadataFailed,
    MoveFailed,
    ReadFailed,
    SignFailed,
    StorageError,
    VisibilityFailed,
    WriteFailed,
)
from ...core.models import (
    DIRECTORY_MIMETYPE,
    BucketProfile,
    EntryType,
    ObjectMetadata,
    StorageEntry,
    UploadPolicy,
    Visibility,
)
from ...core.paths import DELIMITER, PathPrefixer
from ...core.signing import DEFAULT_EXPIRE_SECONDS, DEFAULT_MAX_SIZE, build_upload_policy
from .callback import CallbackVerifier
from .client import ALL_USERS_GROUP, create_s3_client

if TYPE_CHECKING:
    from .buckets import BucketRegistry

logger = logging.getLogger(__name__)


SDK_ERRORS = (ClientError, BotoCoreError)
NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}

MAX_KEYS_PER_PAGE = 1000
DELETE_BATCH_SIZE = 100

PRESIGN_METHODS = {
    "GET": "get_object",
    "PUT": "put_object",
    "HEAD": "head_object",
    "DELETE": "delete_object",
}


def _error_details(exc: Exception) -> tuple[Optional[str], str]:
    """Extract (code, message) from a botocore exception."""
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        return error.get("Code"), error.get("Message") or str(exc)
    return None, str(exc)


def _timestamp(value: Any) -> Optional[int]:
    if isinstance(value, datetime):
        return int(value.timestamp())
    return None


def _guess_mimetype(key: str) -> str:
    return mimetypes.guess_type(key)[0] or DIRECTORY_MIMETYPE


class OssAdapter:
    """
    Filesystem adapter over an OSS bucket.

    One adapter is bound to one bucket profile and one SDK client. Use
    :meth:`bucket` to get the adapter for another configured profile;
    the current adapter is left untouched.
    """

    def __init__(
        self,
        profile: BucketProfile,
        client: Any = None,
        registry: Optional["BucketRegistry"] = None,
        verifier: Optional[CallbackVerifier] = None,
        max_keys: int = MAX_KEYS_PER_PAGE,
    ) -> None:
        self._profile = profile
        self._prefixer = PathPrefixer(profile.root)
        self._client = client if client is not None else create_s3_client(profile)
        self._registry = registry
        self._verifier = verifier
        self._max_keys = max_keys

        logger.info(
            "Initialized OSS adapter",
            extra={
                "bucket": profile.bucket,
                "endpoint": profile.endpoint,
                "root": self._prefixer.prefix,
            }
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def client(self) -> Any:
        """The underlying SDK client, for calls the adapter does not wrap."""
        return self._client

    @property
    def profile(self) -> BucketProfile:
        return self._profile

    @property
    def bucket_name(self) -> str:
        return self._profile.bucket

    @property
    def prefixer(self) -> PathPrefixer:
        return self._prefixer

    def bucket(self, name: str) -> "OssAdapter":
        """
        Return the adapter for another configured bucket profile.

        Raises:
            InvalidArgument: if no profile with that name is registered
        """
        if self._registry is None:
            raise InvalidArgument(f"bucket does not exist: {name}")
        return self._registry.get(name)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, error_cls: type, action: str, key: str, exc: Exception) -> StorageError:
        code, message = _error_details(exc)
        logger.error(
            f"Failed to {action}",
            extra={"bucket": self.bucket_name, "key": key, "code": code, "error": message},
        )
        return error_cls(f"Unable to {action} {key}: {message}", code=code, path=key)

    def _file_key(self, path: str) -> str:
        if not (path or "").strip(DELIMITER):
            raise InvalidArgument("path must not be empty", path=path)
        return self._prefixer.apply(path)

    def _object_exists(self, key: str) -> bool:
        """HEAD a key. Not-found is False; any other SDK error propagates."""
        try:
            self._client.head_object(Bucket=self.bucket_name, Key=key)
            return True
        except ClientError as e:
            code, _ = _error_details(e)
            if code in NOT_FOUND_CODES:
                return False
            raise

    def _is_directory(self, key: str) -> bool:
        base = key.rstrip(DELIMITER)
        return bool(base) and self._object_exists(base + DELIMITER)

    def _put_params(self, key: str, options: Optional[dict[str, Any]]) -> dict[str, Any]:
        params = dict(options or {})
        visibility = params.pop("visibility", None)
        if visibility is not None:
            params["ACL"] = Visibility.parse(visibility).acl
        params.setdefault("ContentType", _guess_mimetype(key))
        params["Bucket"] = self.bucket_name
        params["Key"] = key
        return params

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write(self, path: str, contents: bytes | str, options: Optional[dict[str, Any]] = None) -> None:
        """
        Create or overwrite a file.

        ``options`` is passed through to ``put_object`` (``ContentType``,
        ``CacheControl``, ``Metadata``...). ``visibility`` is translated
        to the canned ACL.
        """
        key = self._file_key(path)
        body = contents.encode("utf-8") if isinstance(contents, str) else contents
        params = self._put_params(key, options)

        try:
            self._client.put_object(Body=body, **params)
        except SDK_ERRORS as e:
            raise self._fail(WriteFailed, "write", key, e) from e

        logger.info(
            "Wrote object",
            extra={"bucket": self.bucket_name, "key": key, "size_bytes": len(body)},
        )

    def write_stream(self, path: str, stream: BinaryIO, options: Optional[dict[str, Any]] = None) -> None:
        """Create or overwrite a file from a binary stream."""
        self.write(path, stream.read(), options)

    update = write
    update_stream = write_stream

    def create_directory(self, path: str) -> StorageEntry:
        """Create an empty directory by writing its zero-byte marker key."""
        key = self._prefixer.apply_directory(path)
        if not key:
            raise InvalidArgument("directory path must not be empty", path=path)

        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=b"",
                ContentType=DIRECTORY_MIMETYPE,
            )
        except SDK_ERRORS as e:
            raise self._fail(WriteFailed, "create directory", key, e) from e

        logger.info("Created directory", extra={"bucket": self.bucket_name, "key": key})
        return StorageEntry(path=self._prefixer.strip_directory(key), type=EntryType.DIR)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def read(self, path: str) -> bytes:
        """Return the contents of a file."""
        key = self._prefixer.apply(path)
        try:
            response = self._client.get_object(Bucket=self.bucket_name, Key=key)
            return response["Body"].read()
        except SDK_ERRORS as e:
            raise self._fail(ReadFailed, "read", key, e) from e

    def read_stream(self, path: str) -> BinaryIO:
        """Return the contents of a file as a stream positioned at 0."""
        return io.BytesIO(self.read(path))

    def exists(self, path: str) -> bool:
        """
        Check whether a file or directory exists.

        The ``path/`` marker is checked first, then the plain key. Transport
        errors are logged and reported as False.
        """
        key = self._prefixer.apply(path)
        if not key:
            return True

        try:
            if self._is_directory(key):
                return True
            return self._object_exists(key)
        except SDK_ERRORS as e:
            code, message = _error_details(e)
            logger.warning(
                "Existence check failed",
                extra={"bucket": self.bucket_name, "key": key, "code": code, "error": message},
            )
            return False

    def get_metadata(self, path: str) -> ObjectMetadata:
        """Return metadata for a single object from a HEAD request."""
        key = self._prefixer.apply(path)
        try:
            response = self._client.head_object(Bucket=self.bucket_name, Key=key)
        except SDK_ERRORS as e:
            raise self._fail(MetadataFailed, "read metadata of", key, e) from e

        headers = response.get("ResponseMetadata", {}).get("HTTPHeaders", {})
        return ObjectMetadata(
            path=self._prefixer.strip(key),
            size=int(response.get("ContentLength", 0)),
            mimetype=response.get("ContentType") or DIRECTORY_MIMETYPE,
            last_modified=_timestamp(response.get("LastModified")),
            etag=(response.get("ETag") or "").strip('"') or None,
            user_metadata=dict(response.get("Metadata") or {}),
            headers=dict(headers),
        )

    def get_size(self, path: str) -> int:
        return self.get_metadata(path).size

    def get_mimetype(self, path: str) -> str:
        return self.get_metadata(path).mimetype

    def get_last_modified(self, path: str) -> Optional[int]:
        return self.get_metadata(path).last_modified

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def _iter_level(self, prefix: str) -> Iterator[tuple[str, str, Optional[dict[str, Any]]]]:
        """
        Walk one directory level, page by page.

        Yields ``(kind, key, object)`` where kind is ``file``, ``dir`` (a
        common prefix) or ``marker`` (the directory's own marker key).
        Objects and common prefixes of a page are merged by key so the
        sequence follows the service's lexicographic order.
        """
        token: Optional[str] = None
        while True:
            params: dict[str, Any] = {
                "Bucket": self.bucket_name,
                "Prefix": prefix,
                "Delimiter": DELIMITER,
                "MaxKeys": self._max_keys,
            }
            if token:
                params["ContinuationToken"] = token

            try:
                page = self._client.list_objects_v2(**params)
            except SDK_ERRORS as e:
                raise self._fail(ListFailed, "list", prefix, e) from e

            items: list[tuple[str, str, Optional[dict[str, Any]]]] = []
            for obj in page.get("Contents") or []:
                kind = "marker" if obj["Key"] == prefix else "file"
                items.append((obj["Key"], kind, obj))
            for common in page.get("CommonPrefixes") or []:
                items.append((common["Prefix"], "dir", None))
            items.sort(key=lambda item: item[0])

            logger.debug(
                "Listed page",
                extra={"bucket": self.bucket_name, "prefix": prefix, "count": len(items)},
            )

            for key, kind, obj in items:
                yield kind, key, obj

            token = page.get("NextContinuationToken")
            if not page.get("IsTruncated") or not token:
                break

    def _walk(self, prefix: str, recursive: bool) -> Iterator[StorageEntry]:
        for kind, key, obj in self._iter_level(prefix):
            if kind == "marker":
                continue
            if kind == "dir":
                yield StorageEntry(path=self._prefixer.strip_directory(key), type=EntryType.DIR)
                if recursive:
                    yield from self._walk(key, recursive)
                continue
            yield StorageEntry(
                path=self._prefixer.strip(key),
                type=EntryType.FILE,
                size=int(obj.get("Size", 0)),
                mimetype=_guess_mimetype(key),
                last_modified=_timestamp(obj.get("LastModified")),
                etag=(obj.get("ETag") or "").strip('"') or None,
            )

    def list_contents(self, path: str = "", recursive: bool = False) -> Iterator[StorageEntry]:
        """
        Lazily list the entries below a directory.

        An empty path lists the root. With ``recursive`` each subdirectory
        is walked depth-first right after its own entry. The generator
        issues list requests as it is consumed and cannot be restarted.

        Raises:
            ListFailed: when a page cannot be fetched
        """
        return self._walk(self._prefixer.apply_directory(path), recursive)

    def _collect_keys(self, prefix: str) -> list[str]:
        """
        Every key under a prefix in removal order.

        Children come before the marker of the directory holding them, so
        deleting (or copying) in this order never leaves an orphaned
        marker behind a half-processed directory.
        """
        keys: list[str] = []
        marker: Optional[str] = None
        for kind, key, _ in self._iter_level(prefix):
            if kind == "file":
                keys.append(key)
            elif kind == "dir":
                keys.extend(self._collect_keys(key))
            else:
                marker = key
        if marker is not None:
            keys.append(marker)
        return keys

    # ------------------------------------------------------------------
    # Deleting
    # ------------------------------------------------------------------

    def delete(self, path: str) -> None:
        """
        Delete a single object.

        When a ``path/`` marker exists the marker is what gets deleted;
        use :meth:`delete_directory` to remove the contents as well.
        """
        key = self._file_key(path)

        try:
            if self._is_directory(key):
                key = key.rstrip(DELIMITER) + DELIMITER
            self._client.delete_object(Bucket=self.bucket_name, Key=key)
        except SDK_ERRORS as e:
            raise self._fail(DeleteFailed, "delete", key, e) from e

        logger.info("Deleted object", extra={"bucket": self.bucket_name, "key": key})

    def delete_directory(self, path: str) -> int:
        """
        Delete every key under a directory, then its marker.

        Keys are removed in batches of at most 100. There is no
        transaction: if a batch fails, keys from later batches remain and
        a new listing shows what is left.

        Returns:
            Number of keys deleted

        Raises:
            InvalidArgument: for the bucket root
            DeleteFailed: when listing or any batch fails
        """
        prefix = self._prefixer.apply_directory(path)
        if not prefix:
            raise InvalidArgument("refusing to delete the bucket root", path=path)

        try:
            keys = self._collect_keys(prefix)
        except ListFailed as e:
            raise DeleteFailed(f"Unable to delete {prefix}: {e.message}", code=e.code, path=prefix) from e

        deleted = 0
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start:start + DELETE_BATCH_SIZE]
            try:
                response = self._client.delete_objects(
                    Bucket=self.bucket_name,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except SDK_ERRORS as e:
                raise self._fail(DeleteFailed, "delete", prefix, e) from e

            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                logger.error(
                    "Batch delete partially failed",
                    extra={
                        "bucket": self.bucket_name,
                        "prefix": prefix,
                        "failed": len(errors),
                        "deleted": deleted + len(batch) - len(errors),
                    }
                )
                raise DeleteFailed(
                    f"Unable to delete {len(errors)} key(s) under {prefix}, "
                    f"first {first.get('Key')}: {first.get('Message')}",
                    code=first.get("Code"),
                    path=prefix,
                )
            deleted += len(batch)

        logger.info(
            "Deleted directory",
            extra={"bucket": self.bucket_name, "prefix": prefix, "count": deleted},
        )
        return deleted

    # ------------------------------------------------------------------
    # Copy / move
    # ------------------------------------------------------------------

    def _copy_object(self, source_key: str, destination_key: str) -> None:
        self._client.copy_object(
            Bucket=self.bucket_name,
            Key=destination_key,
            CopySource={"Bucket": self.bucket_name, "Key": source_key},
        )

    def _check_target(self, source_key: str, destination_key: str, is_directory: bool) -> None:
        """A directory cannot land inside itself; a file cannot land on itself."""
        if is_directory:
            source_dir = source_key.rstrip(DELIMITER) + DELIMITER
            destination_dir = destination_key.rstrip(DELIMITER) + DELIMITER
            if destination_dir.startswith(source_dir):
                raise InvalidArgument(
                    f"destination {destination_key} is inside source directory {source_dir}",
                    path=source_key,
                )
        elif destination_key == source_key:
            raise InvalidArgument(f"source and destination are the same: {source_key}", path=source_key)

    def copy(self, source: str, destination: str) -> None:
        """
        Server-side copy of a file or, when ``source/`` has a marker, of a
        whole directory (children first, marker last).

        Raises:
            InvalidArgument: a directory is copied into itself
            CopyFailed: listing or any object copy fails
        """
        source_key = self._prefixer.apply(source)
        destination_key = self._prefixer.apply(destination)

        try:
            if self._is_directory(source_key):
                self._check_target(source_key, destination_key, is_directory=True)
                source_dir = source_key.rstrip(DELIMITER) + DELIMITER
                destination_dir = destination_key.rstrip(DELIMITER) + DELIMITER
                for key in self._collect_keys(source_dir):
                    self._copy_object(key, destination_dir + key[len(source_dir):])
            else:
                self._copy_object(source_key, destination_key)
        except SDK_ERRORS as e:
            raise self._fail(CopyFailed, "copy", source_key, e) from e
        except ListFailed as e:
            raise CopyFailed(f"Unable to copy {source_key}: {e.message}", code=e.code, path=source_key) from e

        logger.info(
            "Copied object",
            extra={"bucket": self.bucket_name, "source": source_key, "destination": destination_key},
        )

    def move(self, source: str, destination: str) -> None:
        """
        Copy then delete the source.

        Not atomic: if the delete fails after a successful copy, both the
        source and the destination exist and MoveFailed is raised.

        Raises:
            InvalidArgument: the destination is the source, or lies inside
                the source directory; nothing is copied or deleted
            MoveFailed: the copy or the delete fails
        """
        source_key = self._prefixer.apply(source)
        destination_key = self._prefixer.apply(destination)
        try:
            is_directory = self._is_directory(source_key)
        except SDK_ERRORS as e:
            raise self._fail(MoveFailed, "move", source_key, e) from e

        self._check_target(source_key, destination_key, is_directory)

        try:
            self.copy(source, destination)
        except CopyFailed as e:
            raise MoveFailed(f"Unable to move {source_key}: {e.message}", code=e.code, path=source_key) from e

        try:
            if is_directory:
                self.delete_directory(source)
            else:
                self.delete(source)
        except DeleteFailed as e:
            logger.warning(
                "Move copied but could not delete source; both keys now exist",
                extra={"bucket": self.bucket_name, "source": source_key, "destination": destination},
            )
            raise MoveFailed(
                f"Copied {source_key} but could not delete it: {e.message}",
                code=e.code,
                path=source_key,
            ) from e

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def set_visibility(self, path: str, visibility: Visibility | str) -> Visibility:
        """Apply the public-read or private ACL to an object."""
        level = Visibility.parse(visibility)
        key = self._prefixer.apply(path)
        try:
            self._client.put_object_acl(Bucket=self.bucket_name, Key=key, ACL=level.acl)
        except SDK_ERRORS as e:
            raise self._fail(VisibilityFailed, "set visibility of", key, e) from e

        logger.info(
            "Set visibility",
            extra={"bucket": self.bucket_name, "key": key, "visibility": level.value},
        )
        return level

    def get_visibility(self, path: str) -> Visibility:
        """Public when the AllUsers group may read the object."""
        key = self._prefixer.apply(path)
        try:
            response = self._client.get_object_acl(Bucket=self.bucket_name, Key=key)
        except SDK_ERRORS as e:
            raise self._fail(VisibilityFailed, "read visibility of", key, e) from e

        for grant in response.get("Grants") or []:
            grantee = grant.get("Grantee") or {}
            if grantee.get("URI") == ALL_USERS_GROUP and grant.get("Permission") in {"READ", "FULL_CONTROL"}:
                return Visibility.PUBLIC
        return Visibility.PRIVATE

    # ------------------------------------------------------------------
    # URLs and signing
    # ------------------------------------------------------------------

    def get_url(self, path: str) -> str:
        """
        Public URL of an object. Pure: no request is made.

        CDN host when configured, else the bucket host
        (``scheme://bucket.endpoint/`` or ``scheme://cname/``).
        """
        key = self._prefixer.apply(path).lstrip(DELIMITER)
        cdn_host = self._profile.cdn_host
        if cdn_host:
            if "://" not in cdn_host:
                cdn_host = f"{self._profile.scheme}://{cdn_host}"
            return cdn_host.rstrip(DELIMITER) + DELIMITER + key
        return self._profile.host + key

    def signed_url(
        self,
        path: str,
        ttl: int,
        options: Optional[dict[str, Any]] = None,
        method: str = "GET",
    ) -> str:
        """
        Time-limited URL signed by the SDK.

        ``options`` are extra request parameters (``ResponseContentType``,
        ``ResponseContentDisposition``...).

        Raises:
            InvalidArgument: ttl is not positive or method unsupported
            SignFailed: the signer failed
        """
        if ttl <= 0:
            raise InvalidArgument(f"ttl must be positive, got {ttl}", path=path)
        client_method = PRESIGN_METHODS.get(method.upper())
        if client_method is None:
            raise InvalidArgument(f"Unsupported signing method: {method}", path=path)

        key = self._prefixer.apply(path)
        params = dict(options or {})
        params.update({"Bucket": self.bucket_name, "Key": key})
        try:
            return self._client.generate_presigned_url(
                ClientMethod=client_method,
                Params=params,
                ExpiresIn=int(ttl),
            )
        except SDK_ERRORS as e:
            raise self._fail(SignFailed, "sign url for", key, e) from e

    def temporary_url(
        self,
        path: str,
        expiration: datetime | int,
        options: Optional[dict[str, Any]] = None,
        method: str = "GET",
    ) -> str:
        """
        Signed URL valid until ``expiration``.

        ``expiration`` is a datetime (naive means local time) or a unix
        timestamp.
        """
        if isinstance(expiration, datetime):
            now = datetime.now(timezone.utc) if expiration.tzinfo else datetime.now()
            ttl = int((expiration - now).total_seconds())
        else:
            ttl = int(expiration) - int(time.time())

        if ttl <= 0:
            raise InvalidArgument("expiration must be in the future", path=path)
        return self.signed_url(path, ttl, options, method)

    def signature_config(
        self,
        prefix: str = "",
        callback_url: Optional[str] = None,
        custom_data: Optional[dict[str, Any]] = None,
        expire: int = DEFAULT_EXPIRE_SECONDS,
        max_size: int = DEFAULT_MAX_SIZE,
        system_fields: Optional[dict[str, str]] = None,
        policy_conditions: Optional[list[Any]] = None,
    ) -> UploadPolicy:
        """
        Signed policy for uploading straight from a browser.

        The key prefix is placed under the adapter's root prefix so direct
        uploads land where :meth:`read` and :meth:`list_contents` look.
        """
        directory = self._prefixer.apply(prefix) if prefix or self._prefixer.prefix else ""
        return build_upload_policy(
            access_key=self._profile.access_key,
            secret_key=self._profile.secret_key,
            host=self._profile.host,
            prefix=directory,
            callback_url=callback_url,
            custom_data=custom_data,
            expire=expire,
            max_size=max_size,
            system_fields=system_fields,
            policy_conditions=policy_conditions,
        )

    # ------------------------------------------------------------------
    # Upload callbacks
    # ------------------------------------------------------------------

    def verify(
        self,
        authorization: Optional[str],
        pub_key_url: Optional[str],
        path: str,
        body: bytes | str,
        query: str = "",
    ) -> tuple[bool, dict[str, str]]:
        """Verify an upload callback. See :class:`CallbackVerifier`."""
        if self._verifier is None:
            self._verifier = CallbackVerifier()
        return self._verifier.verify(authorization, pub_key_url, path, body, query)
