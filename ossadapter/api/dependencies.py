"""
FastAPI dependency injection.

Dependencies provide the adapter, the callback verifier and configuration
to route handlers. Routes never build their own clients, so tests can
override any of these with ``app.dependency_overrides``.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..infrastructure.storage.adapter import OssAdapter
from ..infrastructure.storage.buckets import create_adapter
from ..infrastructure.storage.callback import CallbackVerifier

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# Process-wide instances. In mock mode the adapter's in-memory client must
# survive across requests or uploaded objects would vanish.
_adapter: Optional[OssAdapter] = None
_callback_verifier: Optional[CallbackVerifier] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8]}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_callback_verifier(
    settings: Annotated[Settings, Depends(get_settings)],
) -> CallbackVerifier:
    """Provide the shared verifier so fetched public keys stay cached."""
    global _callback_verifier

    if _callback_verifier is None:
        _callback_verifier = CallbackVerifier(timeout=settings.callback_key_timeout)
        logger.info("Created callback verifier")
    return _callback_verifier


def get_adapter(
    settings: Annotated[Settings, Depends(get_settings)],
    verifier: Annotated[CallbackVerifier, Depends(get_callback_verifier)],
) -> OssAdapter:
    """
    Provide the default bucket adapter.

    Built once per process. Other configured buckets are reached with
    ``adapter.bucket(name)``.
    """
    global _adapter

    if _adapter is None:
        _adapter = create_adapter(
            settings.default_profile,
            buckets=settings.bucket_profiles,
            mock_mode=settings.oss_mock_mode,
            verifier=verifier,
        )
        logger.info(
            "Created storage adapter",
            extra={"bucket": _adapter.bucket_name, "mock_mode": settings.oss_mock_mode}
        )
    return _adapter


def reset_dependencies() -> None:
    """
    Close and drop the shared instances.

    Called on application shutdown, and by tests between app instances.
    """
    global _adapter, _callback_verifier
    if _callback_verifier is not None:
        _callback_verifier.close()
        logger.info("Closed callback verifier")
    _adapter = None
    _callback_verifier = None


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
AdapterDep = Annotated[OssAdapter, Depends(get_adapter)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
