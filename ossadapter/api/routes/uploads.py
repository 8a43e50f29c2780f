"""
Browser direct-upload endpoints.

The frontend asks for a signed policy, posts the file straight to the
bucket, and OSS then calls back into this service with the upload
details. The file bytes never pass through the API.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, ConfigDict, Field

from ...core.signing import DEFAULT_EXPIRE_SECONDS, DEFAULT_MAX_SIZE
from ..dependencies import AdapterDep, AuthenticatedUser

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class PolicyRequest(BaseModel):
    """Parameters of a direct-upload policy."""
    prefix: str = Field("", description="Key prefix the upload is restricted to")
    callback_url: Optional[str] = Field(None, description="URL OSS calls after the upload")
    custom_data: dict[str, Any] = Field(default_factory=dict, description="Extra callback fields")
    expire: int = Field(DEFAULT_EXPIRE_SECONDS, gt=0, description="Policy lifetime in seconds")
    max_size: int = Field(DEFAULT_MAX_SIZE, gt=0, description="Maximum upload size in bytes")
    bucket: Optional[str] = Field(None, description="Named bucket profile; default bucket if omitted")


class PolicyResponse(BaseModel):
    """Form fields the browser needs for a direct upload."""
    model_config = ConfigDict(populate_by_name=True)

    accessid: str
    host: str
    policy: str
    signature: str
    expire: int
    callback: Optional[str] = None
    callback_var: dict[str, str] = Field(default_factory=dict, alias="callback-var")
    directory: str = Field(alias="dir")


class CallbackResponse(BaseModel):
    """Acknowledgement returned to OSS; it is forwarded to the uploader."""
    status: str = "ok"
    data: dict[str, str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/policy",
    response_model=PolicyResponse,
    status_code=status.HTTP_200_OK,
    summary="Create an upload policy",
    description="Sign a time-limited policy for uploading straight from the browser",
)
def create_policy(
    request: PolicyRequest,
    api_key: AuthenticatedUser,
    adapter: AdapterDep,
) -> PolicyResponse:
    target = adapter.bucket(request.bucket) if request.bucket else adapter

    policy = target.signature_config(
        prefix=request.prefix,
        callback_url=request.callback_url,
        custom_data=request.custom_data,
        expire=request.expire,
        max_size=request.max_size,
    )

    logger.info(
        "Issued upload policy",
        extra={
            "bucket": target.bucket_name,
            "dir": policy.directory,
            "has_callback": policy.callback is not None,
        }
    )

    return PolicyResponse.model_validate(policy.to_dict())


@router.post(
    "/callback",
    response_model=CallbackResponse,
    status_code=status.HTTP_200_OK,
    summary="Receive an upload callback",
    description="Called by OSS after a direct upload. Authenticated by the OSS signature, not an API key.",
    responses={403: {"description": "Signature verification failed"}},
)
async def upload_callback(
    request: Request,
    adapter: AdapterDep,
) -> CallbackResponse:
    body = await request.body()

    # Fetching the public key is a blocking HTTP call
    verified, data = await run_in_threadpool(
        adapter.verify,
        request.headers.get("authorization"),
        request.headers.get("x-oss-pub-key-url"),
        request.url.path,
        body,
        request.url.query,
    )
    if not verified:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Callback signature verification failed",
        )

    logger.info(
        "Upload completed",
        extra={"bucket": data.get("bucket"), "object": data.get("filename"), "size": data.get("size")}
    )
    return CallbackResponse(data=data)
