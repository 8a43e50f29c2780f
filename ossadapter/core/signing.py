"""
Browser direct-upload policy signing.

A browser can upload straight to the bucket with a POST form carrying a
base64 policy document and its HMAC-SHA1 signature. The policy restricts
the object key prefix, the upload size and the time window. Optionally the
service POSTs a callback to the application once the upload completes;
the callback body is a template the service fills from the placeholders
below.

These are plain functions so both the adapter and the HTTP layer can use
them without holding a client.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from .errors import InvalidArgument
from .models import UploadPolicy

logger = logging.getLogger(__name__)


# Placeholders the storage service substitutes in the callback body
SYSTEM_FIELDS: dict[str, str] = {
    "bucket": "${bucket}",
    "etag": "${etag}",
    "filename": "${object}",
    "size": "${size}",
    "mimeType": "${mimeType}",
    "height": "${imageInfo.height}",
    "width": "${imageInfo.width}",
    "format": "${imageInfo.format}",
}

DEFAULT_EXPIRE_SECONDS = 30
DEFAULT_MAX_SIZE = 1048576000  # 1000 MB
CALLBACK_BODY_TYPE = "application/x-www-form-urlencoded"


def gmt_iso8601(timestamp: int) -> str:
    """Format a unix timestamp as ``YYYY-MM-DDTHH:MM:SSZ`` in UTC."""
    moment = datetime.fromtimestamp(int(timestamp), tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def sign_policy(base64_policy: str, secret_key: str) -> str:
    """HMAC-SHA1 the base64 policy with the secret key, base64 encoded."""
    digest = hmac.new(
        secret_key.encode("utf-8"),
        base64_policy.encode("utf-8"),
        hashlib.sha1,
    ).digest()
    return _b64(digest)


def _has_length_range(conditions: Iterable[Any]) -> bool:
    for condition in conditions:
        if isinstance(condition, (list, tuple)) and condition:
            if condition[0] == "content-length-range":
                return True
        elif isinstance(condition, Mapping) and "content-length-range" in condition:
            return True
    return False


def build_conditions(
    prefix: str,
    max_size: int = DEFAULT_MAX_SIZE,
    policy_conditions: Optional[list[Any]] = None,
) -> list[Any]:
    """
    Build the policy condition list.

    Order is: size range (unless the caller supplies one), key prefix,
    then any caller conditions verbatim.
    """
    extra = list(policy_conditions or [])
    conditions: list[Any] = []
    if not _has_length_range(extra):
        conditions.append(["content-length-range", 0, max_size])
    conditions.append(["starts-with", "$key", prefix])
    conditions.extend(extra)
    return conditions


def encode_policy(expiration: int, conditions: list[Any]) -> str:
    """JSON-encode and base64-encode a policy document."""
    document = {
        "expiration": gmt_iso8601(expiration),
        "conditions": conditions,
    }
    policy = json.dumps(document, separators=(",", ":"))
    return _b64(policy.encode("utf-8"))


def resolve_system_fields(
    system_fields: Optional[Mapping[str, str]] = None,
) -> dict[str, str]:
    """
    Validate caller-chosen callback system fields.

    With nothing supplied every known placeholder is used. A supplied
    mapping may rename fields, but each value must be a known placeholder.
    """
    if not system_fields:
        return dict(SYSTEM_FIELDS)

    known = set(SYSTEM_FIELDS.values())
    resolved: dict[str, str] = {}
    for name, placeholder in system_fields.items():
        if placeholder not in known:
            raise InvalidArgument(f"Invalid oss system field: {placeholder}")
        resolved[name] = placeholder
    return resolved


def build_callback(
    callback_url: str,
    system_fields: Mapping[str, str],
    custom_data: Optional[Mapping[str, Any]] = None,
) -> tuple[str, dict[str, str]]:
    """
    Build the base64 callback parameter and the ``x:`` variables.

    Custom fields travel as ``x:<name>`` form fields on the upload and are
    echoed back in the callback body under their plain name.
    """
    body_fields = dict(system_fields)
    callback_var: dict[str, str] = {}
    for name, value in (custom_data or {}).items():
        callback_var[f"x:{name}"] = str(value)
        body_fields[name] = "${x:" + name + "}"

    callback_body = "&".join(f"{name}={value}" for name, value in body_fields.items())
    callback_param = {
        "callbackUrl": callback_url,
        "callbackBody": callback_body,
        "callbackBodyType": CALLBACK_BODY_TYPE,
    }
    encoded = _b64(json.dumps(callback_param, separators=(",", ":")).encode("utf-8"))
    return encoded, callback_var


def build_upload_policy(
    access_key: str,
    secret_key: str,
    host: str,
    prefix: str = "",
    callback_url: Optional[str] = None,
    custom_data: Optional[Mapping[str, Any]] = None,
    expire: int = DEFAULT_EXPIRE_SECONDS,
    max_size: int = DEFAULT_MAX_SIZE,
    system_fields: Optional[Mapping[str, str]] = None,
    policy_conditions: Optional[list[Any]] = None,
    now: Optional[int] = None,
) -> UploadPolicy:
    """
    Produce a signed direct-upload policy.

    Args:
        access_key: Access key id handed to the browser as ``accessid``
        secret_key: Secret used for the HMAC signature (never returned)
        host: Bucket base URL the browser posts to
        prefix: Key prefix uploads are restricted to
        callback_url: Where the service should POST after upload
        custom_data: Extra callback fields, exposed as ``x:<name>``
        expire: Policy lifetime in seconds, must be positive
        max_size: Upper bound of the default content-length-range
        system_fields: Subset/renaming of :data:`SYSTEM_FIELDS`
        policy_conditions: Additional raw policy conditions
        now: Override for the current unix time

    Raises:
        InvalidArgument: non-positive expire or unknown system placeholder
    """
    if expire <= 0:
        raise InvalidArgument(f"expire must be positive, got {expire}")

    prefix = (prefix or "").lstrip("/")
    fields = resolve_system_fields(system_fields)

    callback = None
    callback_var: dict[str, str] = {}
    if callback_url:
        callback, callback_var = build_callback(callback_url, fields, custom_data)

    end = int(now if now is not None else time.time()) + int(expire)
    conditions = build_conditions(prefix, max_size, policy_conditions)
    base64_policy = encode_policy(end, conditions)

    logger.debug(
        "Signed upload policy",
        extra={"prefix": prefix, "expire": end, "has_callback": callback is not None},
    )

    return UploadPolicy(
        access_id=access_key,
        host=host,
        policy=base64_policy,
        signature=sign_policy(base64_policy, secret_key),
        expire=end,
        directory=prefix,
        callback=callback,
        callback_var=callback_var,
    )
