"""
Models package - typed values for the token requestor.

Defines:
- Object keys of Secrets and ServiceAccounts
- Issued tokens and reconciliation results
- The annotation configuration of a carrier Secret
"""

from .token_requestor import (
    IssuedToken,
    ObjectKey,
    ReconcileResult,
    TokenRequestorConfig,
    service_account_to_delete,
)

__all__ = [
    "IssuedToken",
    "ObjectKey",
    "ReconcileResult",
    "TokenRequestorConfig",
    "service_account_to_delete",
]
