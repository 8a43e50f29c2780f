"""
Object storage SDK clients.

Alibaba Cloud OSS exposes an S3-compatible API, so the adapter talks to it
through boto3. Everything the adapter needs from the SDK is the small
subset of the S3 client surface implemented by :class:`MockStorageClient`.

Mock mode keeps objects in memory, enabling API testing and local
development without provisioning a bucket. The mock raises the same
botocore ``ClientError`` shapes as the real service so the adapter's
error mapping runs unchanged.
"""

import hashlib
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from ...core.models import BucketProfile

logger = logging.getLogger(__name__)


ALL_USERS_GROUP = "http://acs.amazonaws.com/groups/global/AllUsers"


def create_s3_client(profile: BucketProfile) -> Any:
    """
    Build a boto3 S3 client for a bucket profile.

    OSS requires virtual-hosted addressing (``bucket.endpoint``) and
    accepts SigV4 signatures on its S3-compatible endpoint.
    """
    boto_config = Config(
        signature_version="s3v4",
        s3={"addressing_style": "virtual"},
    )

    client = boto3.client(
        "s3",
        endpoint_url=profile.endpoint_url,
        aws_access_key_id=profile.access_key,
        aws_secret_access_key=profile.secret_key,
        region_name=profile.region,
        config=boto_config,
    )

    logger.info(
        "Initialized OSS client",
        extra={
            "bucket": profile.bucket,
            "endpoint": profile.endpoint_url,
        }
    )

    return client


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

def _client_error(code: str, message: str, operation: str) -> ClientError:
    status = 404 if code in {"NoSuchKey", "404", "NoSuchBucket"} else 500
    if code == "AccessDenied":
        status = 403
    return ClientError(
        {
            "Error": {"Code": code, "Message": message},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


@dataclass
class _StoredObject:
    body: bytes
    content_type: str
    metadata: dict[str, str] = field(default_factory=dict)
    acl: str = "private"
    last_modified: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def etag(self) -> str:
        return '"' + hashlib.md5(self.body).hexdigest() + '"'


class MockStorageClient:
    """
    In-memory stand-in for the boto3 S3 client.

    Objects live in ``{bucket: {key: _StoredObject}}``. Listing honours
    Prefix, Delimiter, MaxKeys and ContinuationToken so pagination can be
    tested with tiny pages. Use :meth:`fail_on` to make an operation raise
    (or, for ``delete_objects``, report per-key errors).

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(self) -> None:
        self._buckets: dict[str, dict[str, _StoredObject]] = {}
        self._failures: dict[str, tuple[str, Optional[str]]] = {}
        self.calls: list[str] = []
        logger.info("Initialized mock storage client (in-memory)")

    # -- test helpers -------------------------------------------------------

    def fail_on(self, operation: str, code: str = "InternalError", key: Optional[str] = None) -> None:
        """Make ``operation`` fail with ``code`` (optionally only for ``key``)."""
        self._failures[operation] = (code, key)

    def clear_failures(self) -> None:
        self._failures.clear()

    def keys(self, bucket: str) -> list[str]:
        return sorted(self._buckets.get(bucket, {}))

    def _check(self, operation: str, key: Optional[str] = None) -> None:
        self.calls.append(operation)
        failure = self._failures.get(operation)
        if failure is None:
            return
        code, only_key = failure
        if only_key is None or only_key == key:
            raise _client_error(code, f"Injected failure for {operation}", operation)

    def _bucket(self, name: str) -> dict[str, _StoredObject]:
        return self._buckets.setdefault(name, {})

    def _get(self, bucket: str, key: str, operation: str, code: str = "NoSuchKey") -> _StoredObject:
        stored = self._bucket(bucket).get(key)
        if stored is None:
            raise _client_error(code, "The specified key does not exist.", operation)
        return stored

    # -- S3 surface ---------------------------------------------------------

    def put_object(
        self,
        Bucket: str,
        Key: str,
        Body: bytes = b"",
        ContentType: Optional[str] = None,
        Metadata: Optional[dict[str, str]] = None,
        ACL: Optional[str] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self._check("put_object", Key)
        if isinstance(Body, str):
            Body = Body.encode("utf-8")
        elif hasattr(Body, "read"):
            Body = Body.read()
        stored = _StoredObject(
            body=bytes(Body),
            content_type=ContentType or "binary/octet-stream",
            metadata=dict(Metadata or {}),
            acl=ACL or "private",
        )
        self._bucket(Bucket)[Key] = stored
        return {"ETag": stored.etag}

    def get_object(self, Bucket: str, Key: str, **kwargs: Any) -> dict[str, Any]:
        self._check("get_object", Key)
        stored = self._get(Bucket, Key, "GetObject")
        response = self._head_response(stored)
        response["Body"] = io.BytesIO(stored.body)
        return response

    def head_object(self, Bucket: str, Key: str, **kwargs: Any) -> dict[str, Any]:
        self._check("head_object", Key)
        # HEAD responses carry no body, so S3 reports a bare status code
        stored = self._get(Bucket, Key, "HeadObject", code="404")
        return self._head_response(stored)

    def _head_response(self, stored: _StoredObject) -> dict[str, Any]:
        return {
            "ContentLength": len(stored.body),
            "ContentType": stored.content_type,
            "ETag": stored.etag,
            "LastModified": stored.last_modified,
            "Metadata": dict(stored.metadata),
            "ResponseMetadata": {
                "HTTPStatusCode": 200,
                "HTTPHeaders": {
                    "content-length": str(len(stored.body)),
                    "content-type": stored.content_type,
                    "etag": stored.etag,
                },
            },
        }

    def delete_object(self, Bucket: str, Key: str, **kwargs: Any) -> dict[str, Any]:
        self._check("delete_object", Key)
        self._bucket(Bucket).pop(Key, None)
        return {}

    def delete_objects(self, Bucket: str, Delete: dict[str, Any], **kwargs: Any) -> dict[str, Any]:
        self.calls.append("delete_objects")
        failure = self._failures.get("delete_objects")
        deleted: list[dict[str, str]] = []
        errors: list[dict[str, str]] = []
        for item in Delete.get("Objects", []):
            key = item["Key"]
            if failure is not None and failure[1] in (None, key):
                errors.append({"Key": key, "Code": failure[0], "Message": "Injected failure"})
                continue
            self._bucket(Bucket).pop(key, None)
            deleted.append({"Key": key})

        response: dict[str, Any] = {}
        if not Delete.get("Quiet"):
            response["Deleted"] = deleted
        if errors:
            response["Errors"] = errors
        return response

    def copy_object(self, Bucket: str, Key: str, CopySource: dict[str, str], **kwargs: Any) -> dict[str, Any]:
        self._check("copy_object", Key)
        source = self._get(CopySource["Bucket"], CopySource["Key"], "CopyObject")
        copied = _StoredObject(
            body=source.body,
            content_type=source.content_type,
            metadata=dict(source.metadata),
        )
        self._bucket(Bucket)[Key] = copied
        return {"CopyObjectResult": {"ETag": copied.etag}}

    def list_objects_v2(
        self,
        Bucket: str,
        Prefix: str = "",
        Delimiter: str = "",
        MaxKeys: int = 1000,
        ContinuationToken: Optional[str] = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        self._check("list_objects_v2", Prefix)

        # Build the full, ordered result with common prefixes collapsed
        items: list[tuple[str, Optional[_StoredObject]]] = []
        for key in sorted(self._bucket(Bucket)):
            if not key.startswith(Prefix):
                continue
            rest = key[len(Prefix):]
            if Delimiter and Delimiter in rest:
                common = Prefix + rest[: rest.index(Delimiter) + len(Delimiter)]
                if not items or items[-1][0] != common:
                    items.append((common, None))
                continue
            items.append((key, self._bucket(Bucket)[key]))

        if ContinuationToken:
            items = [item for item in items if item[0] > ContinuationToken]

        page, remaining = items[:MaxKeys], items[MaxKeys:]

        response: dict[str, Any] = {
            "IsTruncated": bool(remaining),
            "KeyCount": len(page),
            "MaxKeys": MaxKeys,
            "Prefix": Prefix,
        }
        contents = [
            {
                "Key": name,
                "Size": len(stored.body),
                "LastModified": stored.last_modified,
                "ETag": stored.etag,
                "StorageClass": "STANDARD",
            }
            for name, stored in page
            if stored is not None
        ]
        prefixes = [{"Prefix": name} for name, stored in page if stored is None]
        if contents:
            response["Contents"] = contents
        if prefixes:
            response["CommonPrefixes"] = prefixes
        if Delimiter:
            response["Delimiter"] = Delimiter
        if remaining:
            response["NextContinuationToken"] = page[-1][0]
        return response

    def put_object_acl(self, Bucket: str, Key: str, ACL: str, **kwargs: Any) -> dict[str, Any]:
        self._check("put_object_acl", Key)
        self._get(Bucket, Key, "PutObjectAcl").acl = ACL
        return {}

    def get_object_acl(self, Bucket: str, Key: str, **kwargs: Any) -> dict[str, Any]:
        self._check("get_object_acl", Key)
        stored = self._get(Bucket, Key, "GetObjectAcl")
        grants: list[dict[str, Any]] = [
            {"Grantee": {"Type": "CanonicalUser", "ID": "owner"}, "Permission": "FULL_CONTROL"},
        ]
        if stored.acl in {"public-read", "public-read-write"}:
            grants.append({"Grantee": {"Type": "Group", "URI": ALL_USERS_GROUP}, "Permission": "READ"})
        return {"Owner": {"ID": "owner"}, "Grants": grants}

    def generate_presigned_url(
        self,
        ClientMethod: str,
        Params: Optional[dict[str, Any]] = None,
        ExpiresIn: int = 3600,
        HttpMethod: Optional[str] = None,
    ) -> str:
        self._check("generate_presigned_url")
        params = Params or {}
        return (
            f"mock://{params.get('Bucket')}/{params.get('Key')}"
            f"?method={ClientMethod}&Expires={ExpiresIn}&Signature=mock"
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(
    profile: Optional[BucketProfile] = None,
    mock_mode: bool = False,
) -> Any:
    """
    Create the SDK client for a profile.

    Args:
        profile: Bucket profile (required if not mock_mode)
        mock_mode: If True, return an in-memory client

    Returns:
        boto3 S3 client or MockStorageClient
    """
    if mock_mode:
        return MockStorageClient()

    if profile is None:
        raise ValueError("profile is required when not in mock mode")

    return create_s3_client(profile)
