"""
ossadapter - a filesystem adapter for Alibaba Cloud OSS.

This package contains:
- core: Storage contract, models, errors and policy signing
- infrastructure: SDK client, adapter and callback verification
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"
