"""
Service layer for the token requestor.

This module provides the reconciler that implements the token rotation
logic, separated from the kopf handler layer that schedules it.
"""

from .base_reconciler import BaseReconciler
from .token_requestor_reconciler import TokenRequestorReconciler, is_managed

__all__ = [
    "BaseReconciler",
    "TokenRequestorReconciler",
    "is_managed",
]
