"""
Core storage logic - independent of boto3 and FastAPI.

This package defines the storage contract, domain models, typed errors,
path prefix rules and upload-policy signing.
"""
