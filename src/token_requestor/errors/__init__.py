"""
Error handling module for the token requestor.

This module provides an error hierarchy that gives the kopf handlers
a clear categorization of reconciliation failures.
"""

from .operator_errors import (
    ConfigurationError,
    ExternalServiceError,
    KubernetesAPIError,
    OperatorError,
    TemporaryError,
    ValidationError,
)

__all__ = [
    "OperatorError",
    "ValidationError",
    "TemporaryError",
    "ExternalServiceError",
    "KubernetesAPIError",
    "ConfigurationError",
]
