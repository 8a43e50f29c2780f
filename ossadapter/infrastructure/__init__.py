"""
Infrastructure layer - external service integrations.

- storage: OSS client, filesystem adapter, bucket registry and upload
  callback verification

These wrappers translate between SDK responses and our domain models.
"""
