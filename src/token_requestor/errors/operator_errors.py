"""
Controller error hierarchy with categorization and retry logic.

This module defines the error types used throughout the token requestor,
providing clear categorization for the handlers' retry policy.
"""

from kubernetes.client.rest import ApiException


class OperatorError(Exception):
    """
    Base error class for all controller-related exceptions.

    Provides categorization, retry behavior, and user guidance for resolution.
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: int = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        """
        Initialize controller error.

        Args:
            message: Human-readable error description
            category: Error category (validation, api, configuration, external)
            retryable: Whether the failure is expected to resolve by itself
            delay: Suggested retry delay in seconds
            user_action: What user should do to resolve the issue
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def __str__(self) -> str:
        """Enhanced string representation with user guidance."""
        base_msg = super().__str__()
        if self.user_action:
            return f"{base_msg}\nAction required: {self.user_action}"
        return base_msg


class ValidationError(OperatorError):
    """Error in the carrier Secret's annotations or payload."""

    def __init__(
        self, message: str, field: str | None = None, user_action: str | None = None
    ):
        action = user_action or "Check the Secret annotations and data and fix them"
        if field:
            message = f"Validation error in field '{field}': {message}"
        super().__init__(
            message=message, category="validation", retryable=False, user_action=action
        )
        self.field = field


class TemporaryError(OperatorError):
    """Temporary error that should be retried."""

    def __init__(self, message: str, delay: int = 30, user_action: str | None = None):
        super().__init__(
            message=message,
            category="temporary",
            retryable=True,
            delay=delay,
            user_action=user_action
            or "Wait for automatic retry or check system status",
        )


class ExternalServiceError(OperatorError):
    """Error communicating with external services."""

    def __init__(
        self,
        service: str,
        message: str,
        retryable: bool = True,
        delay: int = 60,
        user_action: str | None = None,
    ):
        action = user_action or f"Check {service} connectivity and credentials"
        super().__init__(
            message=f"{service} error: {message}",
            category="external",
            retryable=retryable,
            delay=delay,
            user_action=action,
        )


class KubernetesAPIError(ExternalServiceError):
    """Error communicating with the Kubernetes API of either cluster."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        retryable: bool = True,
        status: int | None = None,
    ):
        if reason:
            message = f"{message} (reason: {reason})"

        # Some K8s errors are not retryable
        non_retryable_reasons = {"Forbidden", "Unauthorized", "Invalid"}
        if reason in non_retryable_reasons:
            retryable = False

        super().__init__(
            service="Kubernetes API",
            message=message,
            retryable=retryable,
            user_action="Check RBAC permissions and cluster connectivity",
        )
        self.status = status

    @classmethod
    def from_api_exception(cls, error: ApiException, action: str) -> "KubernetesAPIError":
        """
        Wrap a kubernetes client exception.

        Conflicts, throttling and server-side failures are retryable; other
        client errors are reported as permanent.

        Args:
            error: The exception raised by the kubernetes client
            action: Description of the failed call, e.g. "update secret default/foo"
        """
        status = getattr(error, "status", None)
        retryable = status is None or status in (409, 429) or status >= 500
        return cls(
            f"Failed to {action}: HTTP {status}",
            reason=getattr(error, "reason", None),
            retryable=retryable,
            status=status,
        )


class ConfigurationError(OperatorError):
    """Error in controller configuration."""

    def __init__(
        self, message: str, retryable: bool = False, user_action: str | None = None
    ):
        super().__init__(
            message=message,
            category="configuration",
            retryable=retryable,
            user_action=user_action or "Review and correct configuration",
        )
