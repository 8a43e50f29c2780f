"""
Named bucket profiles and the adapters built from them.
"""

import logging
from typing import Any, Callable, Optional

from ...core.errors import InvalidArgument
from ...core.models import BucketProfile
from .adapter import OssAdapter
from .callback import CallbackVerifier
from .client import create_storage_client

logger = logging.getLogger(__name__)


ClientFactory = Callable[[BucketProfile], Any]


class BucketRegistry:
    """
    Profile name -> profile, plus a cache of built adapters.

    Adapters are created on first use and reused afterwards. All adapters
    of a registry share one callback verifier (and its key cache).
    """

    def __init__(
        self,
        profiles: Optional[dict[str, BucketProfile]] = None,
        client_factory: Optional[ClientFactory] = None,
        mock_mode: bool = False,
        verifier: Optional[CallbackVerifier] = None,
    ) -> None:
        self._profiles: dict[str, BucketProfile] = dict(profiles or {})
        self._adapters: dict[str, OssAdapter] = {}
        self._mock_mode = mock_mode
        self._client_factory = client_factory or self._default_factory
        self._verifier = verifier

    def _default_factory(self, profile: BucketProfile) -> Any:
        return create_storage_client(profile, mock_mode=self._mock_mode)

    def names(self) -> list[str]:
        return sorted(self._profiles)

    def register(self, name: str, profile: BucketProfile, adapter: Optional[OssAdapter] = None) -> None:
        """Add (or replace) a profile. Any cached adapter for it is dropped."""
        self._profiles[name] = profile
        self._adapters.pop(name, None)
        if adapter is not None:
            self._adapters[name] = adapter

    def get(self, name: str) -> OssAdapter:
        """
        Return the adapter for a profile, building it on first use.

        Raises:
            InvalidArgument: if the name is not registered
        """
        adapter = self._adapters.get(name)
        if adapter is not None:
            return adapter

        profile = self._profiles.get(name)
        if profile is None:
            raise InvalidArgument(f"bucket does not exist: {name}")

        adapter = OssAdapter(
            profile,
            client=self._client_factory(profile),
            registry=self,
            verifier=self._verifier,
        )
        self._adapters[name] = adapter
        logger.info("Created bucket adapter", extra={"profile": name, "bucket": profile.bucket})
        return adapter


def create_adapter(
    profile: BucketProfile,
    buckets: Optional[dict[str, BucketProfile]] = None,
    mock_mode: bool = False,
    client: Any = None,
    verifier: Optional[CallbackVerifier] = None,
) -> OssAdapter:
    """
    Build the default adapter together with its bucket registry.

    Args:
        profile: Profile of the default bucket
        buckets: Other named profiles reachable through ``adapter.bucket()``
        mock_mode: Use in-memory clients instead of boto3
        client: Explicit client for the default bucket

    Returns:
        OssAdapter bound to ``profile``
    """
    verifier = verifier or CallbackVerifier()
    registry = BucketRegistry(buckets, mock_mode=mock_mode, verifier=verifier)
    if client is None:
        client = create_storage_client(profile, mock_mode=mock_mode)

    adapter = OssAdapter(profile, client=client, registry=registry, verifier=verifier)
    if "default" not in registry.names():
        registry.register("default", profile, adapter)
    return adapter
