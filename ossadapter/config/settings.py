"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables (and ``.env``) with
sensible defaults. Validation happens at startup so a bad endpoint or a
malformed bucket map fails fast.

Mock mode swaps the boto3 client for an in-memory one, enabling local
development without a bucket.
"""

import json
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.models import BucketProfile


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like api_keys), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "OSS Adapter API"
    api_version: str = "v1"
    api_keys: str = Field(
        default="dev-key-1,dev-key-2",
        description="Comma-separated API keys. Using a list enables key rotation without downtime."
    )

    # OSS Configuration
    oss_access_key: str = Field(
        default="",
        description="Access key id. Required unless in mock mode."
    )
    oss_secret_key: str = Field(
        default="",
        description="Access key secret. Signs requests and upload policies."
    )
    oss_endpoint: str = Field(
        default="oss-cn-hangzhou.aliyuncs.com",
        description="Region endpoint. An http:// or https:// prefix selects the scheme (default http)."
    )
    oss_bucket: str = Field(
        default="",
        description="Default bucket name"
    )
    oss_is_cname: bool = Field(
        default=False,
        description="Endpoint is a custom domain bound to the bucket"
    )
    oss_root: str = Field(
        default="",
        description="Key prefix every path is rooted under"
    )
    oss_cdn_host: Optional[str] = Field(
        default=None,
        description="CDN host used for public URLs instead of the bucket host"
    )
    oss_region: Optional[str] = Field(
        default=None,
        description="Signing region, e.g. oss-cn-hangzhou"
    )
    oss_buckets: str = Field(
        default="",
        description="JSON object of extra named bucket profiles, same fields as the default one"
    )
    oss_mock_mode: bool = Field(
        default=False,
        description="Use in-memory storage instead of OSS. Enables local dev without a bucket."
    )

    # Upload callbacks
    callback_key_timeout: float = Field(
        default=5.0,
        description="Seconds to wait when fetching the callback public key"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins. Use * for development only."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def api_keys_list(self) -> list[str]:
        """Parse comma-separated API keys into a list."""
        return [key.strip() for key in self.api_keys.split(",") if key.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def default_profile(self) -> BucketProfile:
        """Profile of the default bucket. The endpoint scheme is parsed off here."""
        return BucketProfile.create(
            access_key=self.oss_access_key,
            secret_key=self.oss_secret_key,
            endpoint=self.oss_endpoint,
            bucket=self.oss_bucket or "mock-bucket",
            is_cname=self.oss_is_cname,
            root=self.oss_root,
            cdn_host=self.oss_cdn_host,
            region=self.oss_region,
        )

    @property
    def bucket_profiles(self) -> dict[str, BucketProfile]:
        """
        Named profiles from ``OSS_BUCKETS``.

        Missing credentials, endpoint and region fall back to the default
        profile, so a second bucket under the same account only needs
        ``bucket``. CName is never inherited: a custom domain is bound to
        one bucket.
        """
        if not self.oss_buckets.strip():
            return {}

        try:
            raw = json.loads(self.oss_buckets)
        except json.JSONDecodeError as e:
            raise ValueError(f"OSS_BUCKETS is not valid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise ValueError("OSS_BUCKETS must be a JSON object of name -> profile")

        profiles: dict[str, BucketProfile] = {}
        for name, data in raw.items():
            merged = {
                "access_key": self.oss_access_key,
                "secret_key": self.oss_secret_key,
                "endpoint": self.oss_endpoint,
                "region": self.oss_region,
            }
            merged.update(data)
            profiles[name] = BucketProfile.from_mapping(merged)
        return profiles

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set based on mock mode settings.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on whether we're in mock mode.
        """
        missing = []

        if not self.oss_mock_mode:
            if not self.oss_access_key:
                missing.append("OSS_ACCESS_KEY")
            if not self.oss_secret_key:
                missing.append("OSS_SECRET_KEY")
            if not self.oss_endpoint:
                missing.append("OSS_ENDPOINT")
            if not self.oss_bucket:
                missing.append("OSS_BUCKET")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    For tests, call get_settings.cache_clear() to reset.
    """
    return Settings()
