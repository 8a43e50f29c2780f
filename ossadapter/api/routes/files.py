"""
File listing and URL endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from ..dependencies import AdapterDep, AuthenticatedUser

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class FileEntry(BaseModel):
    """One listing entry."""
    path: str
    type: str = Field(description="file or dir")
    size: int = 0
    mimetype: str
    timestamp: Optional[int] = Field(None, description="Last modified, unix seconds")
    etag: Optional[str] = None


class FileListResponse(BaseModel):
    entries: list[FileEntry]
    total: int


class FileUrlResponse(BaseModel):
    path: str
    url: str = Field(description="Public URL")
    signed_url: Optional[str] = Field(None, description="Signed URL, when ttl was given")
    expires_in: Optional[int] = None


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=FileListResponse,
    status_code=status.HTTP_200_OK,
    summary="List a directory",
)
def list_files(
    api_key: AuthenticatedUser,
    adapter: AdapterDep,
    path: str = Query("", description="Directory to list; empty for the root"),
    recursive: bool = Query(False),
    bucket: Optional[str] = Query(None, description="Named bucket profile"),
) -> FileListResponse:
    target = adapter.bucket(bucket) if bucket else adapter
    entries = [FileEntry(**entry.to_dict()) for entry in target.list_contents(path, recursive=recursive)]

    logger.debug(
        "Listed files",
        extra={"bucket": target.bucket_name, "path": path, "count": len(entries)}
    )
    return FileListResponse(entries=entries, total=len(entries))


@router.get(
    "/url",
    response_model=FileUrlResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the URL of a file",
)
def file_url(
    api_key: AuthenticatedUser,
    adapter: AdapterDep,
    path: str = Query(..., min_length=1),
    ttl: Optional[int] = Query(None, gt=0, description="Also sign a URL valid for this many seconds"),
    bucket: Optional[str] = Query(None, description="Named bucket profile"),
) -> FileUrlResponse:
    target = adapter.bucket(bucket) if bucket else adapter

    signed = target.signed_url(path, ttl) if ttl else None
    return FileUrlResponse(
        path=path,
        url=target.get_url(path),
        signed_url=signed,
        expires_in=ttl,
    )
